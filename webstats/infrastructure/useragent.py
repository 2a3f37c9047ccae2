# ==============================================================================
# User-Agent Parsing and Bot Detection
# ==============================================================================
"""
Keyword/regex based user-agent classification.

Coarse on purpose: it recognizes the major browsers, operating systems and
device classes and leaves everything else as None (stored as "Unknown").
Rules are ordered; the first match wins, so more specific tokens
("Edg/", "OPR/") come before the generic ones they contain ("Chrome/").
"""

import re

from webstats.base.lookups import BotDetector, UserAgentParser
from webstats.core.models import ParsedUserAgent

# (name, version pattern) pairs; the pattern's first group is the version
BROWSER_RULES: tuple[tuple[str, re.Pattern], ...] = (
    ("Edge", re.compile(r"Edg(?:e|A|iOS)?/([\d.]+)")),
    ("Opera", re.compile(r"(?:OPR|Opera)/([\d.]+)")),
    ("Samsung Internet", re.compile(r"SamsungBrowser/([\d.]+)")),
    ("Firefox", re.compile(r"(?:Firefox|FxiOS)/([\d.]+)")),
    ("Chrome", re.compile(r"(?:Chrome|CriOS)/([\d.]+)")),
    ("Safari", re.compile(r"Version/([\d.]+).*Safari/")),
    ("IE", re.compile(r"(?:MSIE |Trident/.*rv:)([\d.]+)")),
)

OS_RULES: tuple[tuple[str, re.Pattern], ...] = (
    ("Windows", re.compile(r"Windows NT ([\d.]+)")),
    ("iOS", re.compile(r"(?:iPhone|iPad|iPod).*? OS ([\d_]+)")),
    ("Android", re.compile(r"Android ([\d.]+)")),
    ("Chrome OS", re.compile(r"CrOS \S+ ([\d.]+)")),
    ("macOS", re.compile(r"Mac OS X ([\d_.]+)")),
    ("Linux", re.compile(r"Linux()")),
)

ENGINE_RULES: tuple[tuple[str, re.Pattern], ...] = (
    ("EdgeHTML", re.compile(r"Edge/([\d.]+)")),
    ("Blink", re.compile(r"Chrome/([\d.]+)")),
    ("Gecko", re.compile(r"rv:([\d.]+)\) Gecko/")),
    ("WebKit", re.compile(r"AppleWebKit/([\d.]+)")),
    ("Trident", re.compile(r"Trident/([\d.]+)")),
)

# (architecture, tokens) checked in order against the lowercased UA
CPU_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("amd64", ("x86_64", "win64", "x64", "amd64")),
    ("arm64", ("aarch64", "arm64")),
    ("arm", ("armv7", "armv8", " arm")),
    ("ia32", ("i686", "i386", "wow64")),
)

BOT_KEYWORDS = (
    "bot",
    "crawl",
    "spider",
    "slurp",
    "headless",
    "lighthouse",
    "facebookexternalhit",
    "embedly",
    "preview",
    "curl/",
    "wget/",
    "python-requests",
    "httpclient",
    "go-http-client",
)


def _first_match(rules, user_agent: str) -> tuple[str | None, str | None]:
    for name, pattern in rules:
        match = pattern.search(user_agent)
        if match:
            version = match.group(1).replace("_", ".") if match.group(1) else None
            return name, version
    return None, None


class RuleBasedUserAgentParser(UserAgentParser):
    """UserAgentParser built from ordered keyword and regex rules."""

    def parse(self, user_agent: str) -> ParsedUserAgent:
        if not user_agent:
            return ParsedUserAgent()

        ua_lower = user_agent.lower()
        browser, browser_version = _first_match(BROWSER_RULES, user_agent)
        os_name, os_version = _first_match(OS_RULES, user_agent)
        engine, engine_version = _first_match(ENGINE_RULES, user_agent)
        device, vendor, model = self._device(ua_lower)

        return ParsedUserAgent(
            browser=browser,
            browser_version=browser_version,
            os=os_name,
            os_version=os_version,
            device=device,
            device_vendor=vendor,
            device_model=model,
            engine=engine,
            engine_version=engine_version,
            cpu_architecture=self._cpu(ua_lower),
        )

    @staticmethod
    def _device(ua_lower: str) -> tuple[str | None, str | None, str | None]:
        """Device class, vendor and model."""
        if "ipad" in ua_lower:
            return "tablet", "Apple", "iPad"
        if "iphone" in ua_lower:
            return "mobile", "Apple", "iPhone"
        if "watch" in ua_lower and "wear os" in ua_lower:
            return "wearable", None, None
        if "android" in ua_lower:
            vendor = "Samsung" if "samsung" in ua_lower or "sm-" in ua_lower else None
            if "mobile" in ua_lower:
                return "mobile", vendor, None
            return "tablet", vendor, None
        if "tablet" in ua_lower:
            return "tablet", None, None
        if "mobile" in ua_lower:
            return "mobile", None, None
        if "macintosh" in ua_lower:
            return None, "Apple", "Macintosh"
        return None, None, None

    @staticmethod
    def _cpu(ua_lower: str) -> str | None:
        for architecture, tokens in CPU_RULES:
            if any(token in ua_lower for token in tokens):
                return architecture
        return None


class KeywordBotDetector(BotDetector):
    """Flags user agents containing well-known crawler or tool keywords."""

    def __init__(self, keywords: tuple[str, ...] = BOT_KEYWORDS):
        self._keywords = tuple(k.lower() for k in keywords)

    def is_bot(self, user_agent: str) -> bool:
        if not user_agent:
            return False
        ua_lower = user_agent.lower()
        return any(keyword in ua_lower for keyword in self._keywords)
