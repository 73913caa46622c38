"""
User agent classification

Dependency-free substring matching. Good enough to cache a readable device
name and to feed the bot/automation signals of the risk scorer; not a
replacement for a maintained UA database.
"""

from typing import Dict, Optional

# Minimum length for a user agent to be considered plausible
MIN_PLAUSIBLE_LENGTH = 10

# Order matters: Edge and Opera also advertise "chrome", and Chrome
# advertises "safari".
BROWSERS = (
    ("edge", ("edg/", "edge/", "edga/", "edgios/")),
    ("opera", ("opr/", "opera")),
    ("firefox", ("firefox", "fxios")),
    ("chrome", ("chrome", "crios", "chromium")),
    ("safari", ("safari",)),
    ("internet_explorer", ("trident", "msie")),
)

# iOS advertises "mac os x" and Android advertises "linux"
OPERATING_SYSTEMS = (
    ("ios", ("iphone", "ipad", "ipod")),
    ("android", ("android",)),
    ("windows", ("windows", "win32", "win64")),
    ("macos", ("mac os", "macintosh", "darwin")),
    ("linux", ("linux", "ubuntu", "debian", "x11")),
)

AUTOMATION_INDICATORS = (
    "headless",
    "selenium",
    "puppeteer",
    "playwright",
    "phantomjs",
    "webdriver",
)

BOT_INDICATORS = (
    "bot",
    "crawler",
    "spider",
    "scraper",
    "curl",
    "wget",
    "python-requests",
    "python-urllib",
    "httpx",
    "aiohttp",
    "go-http-client",
    "java/",
    "okhttp",
    "axios",
    "node-fetch",
    "libwww",
)


def is_automation_user_agent(user_agent: Optional[str]) -> bool:
    if not user_agent:
        return False
    ua_lower = user_agent.lower()
    return any(indicator in ua_lower for indicator in AUTOMATION_INDICATORS)


def is_bot_user_agent(user_agent: Optional[str]) -> bool:
    if not user_agent:
        return False
    ua_lower = user_agent.lower()
    return any(indicator in ua_lower for indicator in BOT_INDICATORS)


def is_implausible_user_agent(user_agent: Optional[str]) -> bool:
    """Missing, blank or too short to come from a real browser"""
    return not user_agent or len(user_agent.strip()) < MIN_PLAUSIBLE_LENGTH


def _match(ua_lower: str, table) -> str:
    for name, patterns in table:
        if any(pattern in ua_lower for pattern in patterns):
            return name
    return "unknown"


def parse_user_agent(user_agent: Optional[str]) -> Dict[str, object]:
    """Classify a user agent into browser, os and device type"""
    if not user_agent or not user_agent.strip():
        return {
            "browser": "unknown",
            "os": "unknown",
            "device_type": "unknown",
            "is_mobile": False,
            "is_tablet": False,
            "is_bot": True,
            "is_automation": False,
        }

    ua_lower = user_agent.lower()

    browser = _match(ua_lower, BROWSERS)
    os_name = _match(ua_lower, OPERATING_SYSTEMS)

    is_tablet = any(term in ua_lower for term in ("tablet", "ipad"))
    is_mobile = not is_tablet and any(
        term in ua_lower for term in ("mobile", "iphone", "ipod", "android")
    )

    is_automation = is_automation_user_agent(user_agent)
    is_bot = is_automation or is_bot_user_agent(user_agent)

    if is_bot:
        device_type = "bot"
    elif is_tablet:
        device_type = "tablet"
    elif is_mobile:
        device_type = "mobile"
    else:
        device_type = "desktop"

    return {
        "browser": browser,
        "os": os_name,
        "device_type": device_type,
        "is_mobile": is_mobile,
        "is_tablet": is_tablet,
        "is_bot": is_bot,
        "is_automation": is_automation,
    }
