# ==============================================================================
# Static Referrer Name Table
# ==============================================================================
"""
Hostname -> display name table for well-known referrers.

Hosts are stored lowercase without a leading "www.". Hosts that need pattern
matching (regional Google domains, LinkedIn subdomains) are handled by the
matchers in core/referrers.py instead.
"""

from webstats.base.lookups import ReferrerNameTable

KNOWN_REFERRERS: dict[str, str] = {
    # Search
    "google.com": "Google",
    "bing.com": "Bing",
    "duckduckgo.com": "DuckDuckGo",
    "search.yahoo.com": "Yahoo",
    "yandex.ru": "Yandex",
    "baidu.com": "Baidu",
    "ecosia.org": "Ecosia",
    "search.brave.com": "Brave Search",
    "kagi.com": "Kagi",
    # Social
    "facebook.com": "Facebook",
    "m.facebook.com": "Facebook",
    "l.facebook.com": "Facebook",
    "instagram.com": "Instagram",
    "l.instagram.com": "Instagram",
    "t.co": "X (Twitter)",
    "twitter.com": "X (Twitter)",
    "x.com": "X (Twitter)",
    "reddit.com": "Reddit",
    "old.reddit.com": "Reddit",
    "out.reddit.com": "Reddit",
    "youtube.com": "YouTube",
    "m.youtube.com": "YouTube",
    "pinterest.com": "Pinterest",
    "threads.net": "Threads",
    "bsky.app": "Bluesky",
    "mastodon.social": "Mastodon",
    # Community / dev
    "news.ycombinator.com": "Hacker News",
    "github.com": "GitHub",
    "producthunt.com": "Product Hunt",
    "dev.to": "DEV",
    "medium.com": "Medium",
    "stackoverflow.com": "Stack Overflow",
    # AI assistants
    "chatgpt.com": "ChatGPT",
    "chat.openai.com": "ChatGPT",
    "perplexity.ai": "Perplexity",
}


class StaticReferrerNameTable(ReferrerNameTable):
    """ReferrerNameTable over an in-memory dict."""

    def __init__(self, names: dict[str, str] | None = None):
        """
        Initialize the table.

        Args:
            names: Hostname -> name mapping. Defaults to KNOWN_REFERRERS.
        """
        source = KNOWN_REFERRERS if names is None else names
        self._names = {host.lower(): name for host, name in source.items()}

    def canonical_name(self, hostname: str) -> str | None:
        return self._names.get(hostname.lower())
