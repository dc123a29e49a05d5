"""
Pytest fixtures and configuration for SEO intelligence tests.
"""

from datetime import datetime, timezone
from typing import Optional

import pytest

from seo_intelligence.cache import CacheStore, MemoryCacheBackend
from seo_intelligence.config import ProviderSettings
from seo_intelligence.ledger import UsageLedger
from seo_intelligence.llm_client import ProviderAdapter
from seo_intelligence.models import TokenUsage
from seo_intelligence.orchestrator import CompletionOrchestrator

FIXED_NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeAdapter(ProviderAdapter):
    """
    Scripted adapter for orchestrator tests.

    Each ``_generate`` call consumes the next scripted response; the last one
    repeats. A response that is an exception instance is raised instead.
    """

    def __init__(
        self,
        name: str,
        responses: Optional[list] = None,
        available: bool = True,
        usage: Optional[TokenUsage] = TokenUsage(120, 80),
        supports_batch: bool = True,
    ):
        super().__init__(
            ProviderSettings(name=name, api_key="test-key", model=f"{name}-model"),
            availability_ttl=0.0,
        )
        self.name = name
        self.responses = list(responses or ['["Default Candidate"]'])
        self.available = available
        self.usage = usage
        self.supports_batch = supports_batch
        self.calls: list[str] = []
        self.availability_checks = 0

    def _check_available(self) -> bool:
        self.availability_checks += 1
        return self.available

    def _generate(self, prompt, max_tokens, temperature):
        self.calls.append(prompt)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response, self.usage


@pytest.fixture
def fixed_clock():
    """Clock returning a fixed UTC timestamp."""
    return lambda: FIXED_NOW


@pytest.fixture
def make_adapter():
    """Factory for scripted fake adapters."""
    return FakeAdapter


@pytest.fixture
def cache_store() -> CacheStore:
    """Fresh in-memory cache store."""
    return CacheStore(MemoryCacheBackend())


@pytest.fixture
def ledger(fixed_clock) -> UsageLedger:
    """Usage ledger pinned to a fixed clock."""
    return UsageLedger(clock=fixed_clock)


@pytest.fixture
def make_orchestrator(cache_store, ledger):
    """Factory building an orchestrator over the shared cache and ledger."""
    def _make(adapters):
        return CompletionOrchestrator(adapters, cache=cache_store, ledger=ledger)
    return _make


@pytest.fixture
def good_html() -> str:
    """A well-optimized page."""
    return """
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <meta name="description" content="This is a comprehensive SEO test page with various optimization features to test all seven components of our scoring system.">
  <meta property="og:title" content="SEO Test Page">
  <meta property="og:description" content="Testing comprehensive SEO audit functionality">
  <meta property="og:image" content="https://example.com/image.jpg">
  <meta name="twitter:card" content="summary_large_image">
  <link rel="canonical" href="https://example.com/test-page">
  <link rel="stylesheet" href="styles.min.css">
  <link rel="dns-prefetch" href="//cdn.example.com">
  <title>SEO Best Practices - Comprehensive Optimization Example</title>
  <script type="application/ld+json">
  {
    "@context": "https://schema.org",
    "@type": "Article",
    "headline": "SEO Test Article"
  }
  </script>
  <style>
    @media (max-width: 768px) {
      body { font-size: 16px; }
    }
  </style>
</head>
<body>
  <header>
    <nav>
      <a href="/">Home</a>
      <a href="/about">About</a>
    </nav>
  </header>

  <main>
    <article>
      <h1>Main Heading - SEO Best Practices</h1>

      <h2>Introduction to SEO Testing</h2>
      <p>This is a comprehensive test page designed to evaluate all seven components of our SEO scoring system.
      The content includes a proper heading structure, internal links, and optimized images to demonstrate best practices.</p>

      <img src="hero-image.jpg" alt="Hero image showing SEO best practices" width="800" height="400" srcset="hero-small.jpg 480w, hero-image.jpg 800w">

      <h2>Content Quality Matters</h2>
      <p>High-quality content is essential for good SEO performance in every competitive market. This section demonstrates proper keyword usage,
      natural language, and comprehensive coverage of the topic. Internal linking helps users navigate to related content.</p>

      <ul>
        <li>Use descriptive headings to give every page a clear and logical outline</li>
        <li>Include relevant keywords naturally within the opening paragraphs</li>
        <li>Add internal and external links that point readers to helpful resources</li>
        <li>Optimize images with alt text that describes what each picture shows</li>
      </ul>

      <h2>Technical SEO Implementation</h2>
      <p>Technical SEO ensures that search engines can crawl and index your content effectively across the whole site. This includes a proper
      URL structure, structured data markup, and careful mobile optimization for smaller screens.</p>

      <img src="technical-seo.jpg" alt="Technical SEO implementation diagram" loading="lazy" width="800" height="400" srcset="technical-seo-small.jpg 480w, technical-seo.jpg 800w">

      <h2>Mobile-First Indexing</h2>
      <p>With mobile-first indexing, search engines primarily use the mobile version of content for indexing and ranking pages.
      Responsive design and mobile optimization are now critical factors for every site that wants to rank well.
      Test every template on real phones and tablets, not only in a desktop browser window that has been resized.</p>

      <p>Read our <a href="/guides/mobile-seo">mobile SEO guide</a> or visit the
      <a href="https://example.com/external-resource" rel="noopener noreferrer" target="_blank">external resource</a> for more detail.</p>

      <h2>Performance Optimization</h2>
      <p>Page speed is a confirmed ranking factor for both desktop and mobile search results. Optimize images, minify resources, and use lazy loading to improve
      performance metrics and the overall experience that visitors have on every page of the site.</p>

      <p>Good performance also depends on careful caching, compressed assets, and a lean set of third party scripts.
      Review the scripts that load on each template and remove anything that does not add value for visitors.
      Measure again after every change so that improvements are confirmed rather than assumed by the team.</p>

      <form action="https://example.com/submit" method="POST">
        <label for="email">Email Address:</label>
        <input type="email" id="email" name="email" aria-label="Email address input">
        <button type="submit">Subscribe</button>
      </form>
    </article>
  </main>

  <footer>
    <p>Copyright 2026 SEO Test Site. All rights reserved.</p>
  </footer>

  <script src="app.min.js" defer></script>
</body>
</html>
"""


@pytest.fixture
def poor_html() -> str:
    """A page with many problems."""
    return """
<!DOCTYPE html>
<html>
<head>
  <title>Page</title>
  <script src="http://example.com/script.js"></script>
</head>
<body>
  <h1>Welcome</h1>
  <h1>Another H1</h1>
  <p>Short content.</p>
  <img src="image.jpg">
  <a href="https://other.example.org/" target="_blank"></a>
  <form action="http://example.com/login"><input type="text" name="user"></form>
</body>
</html>
"""


@pytest.fixture
def untitled_html() -> str:
    """No title, no meta description, one H1 and two H2s."""
    return """
<html lang="en">
<head>
  <meta name="viewport" content="width=device-width, initial-scale=1">
</head>
<body>
  <h1>Brewing Better Coffee at Home</h1>
  <h2>Choosing Beans</h2>
  <p>Fresh beans make the biggest difference to the flavor of your coffee.</p>
  <h2>Grinding</h2>
  <p>Grind right before brewing for the best results.</p>
</body>
</html>
"""
