"""Heuristic extraction of place details from arbitrary web pages."""
import logging
import re
from dataclasses import dataclass, field
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; TripCurator/1.0)"
FETCH_TIMEOUT = 10.0
MAX_CONTENT_CHARS = 5000
MAX_IMAGES = 5

ADDRESS_SELECTORS = [
    '[itemtype*="PostalAddress"]',
    '[class*="address"]',
    '[class*="location"]',
    "address",
    '[data-testid*="address"]',
]

PHONE_PATTERNS = [
    re.compile(r"T:\s*(\+\d{1,4}[\s.-]?\d{2,4}[\s.-]?\d{3}[\s.-]?\d{3,4})", re.I),
    re.compile(r"(?:tel|phone|call)[:\s]*(\+?\d{1,4}[\s.-]?\d{2,4}[\s.-]?\d{3}[\s.-]?\d{3,4})", re.I),
    re.compile(r"(\+\d{1,4}[\s.-]?\d{2,4}[\s.-]?\d{3}[\s.-]?\d{3,4})"),
    re.compile(r"(\+?1?[-.\s]?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4})"),
]

HOURS_SELECTORS = [
    '[class*="hours"]',
    '[class*="schedule"]',
    '[itemtype*="OpeningHoursSpecification"]',
]

HOURS_PATTERNS = [
    re.compile(r"(?:hours|open)[:\s]*(?:daily\s+)?(?:for\s+\w+\s+)?(?:from\s+)?(\d{1,2}[:.]\d{2}\s*[-–]\s*\d{1,2}[:.]\d{2})", re.I),
    re.compile(r"(\d{1,2}[:.]\d{2}\s*(?:am|pm)?\s*[-–]\s*\d{1,2}[:.]\d{2}\s*(?:am|pm)?)", re.I),
    re.compile(r"(?:open|hours)[:\s]*([^\n]{10,60}(?:am|pm|daily|\d{2}:\d{2}))", re.I),
]

REVIEW_SELECTORS = [
    '[class*="review"]',
    '[itemtype*="Review"]',
    '[data-testid*="review"]',
]

RATING_SELECTORS = [
    '[class*="rating"]',
    '[itemtype*="AggregateRating"]',
    '[aria-label*="rating"]',
]

PRICE_PATTERN = re.compile(r"(\$\$\$?-\$\$\$\$|\$+|€+|£+)")

CUISINE_SELECTORS = [
    '[class*="cuisine"]',
    '[class*="category"]',
    '[itemtype*="Restaurant"] [class*="type"]',
]

CUISINE_TYPES = [
    "Thai", "Italian", "Japanese", "Chinese", "Indian", "Mexican", "French",
    "Korean", "Vietnamese", "Mediterranean", "American", "Seafood", "Steakhouse",
    "Sushi", "Pizza", "BBQ", "Greek", "Spanish", "Middle Eastern", "Fusion",
]

RESERVATION_SELECTORS = [
    'a[href*="reservation"]',
    'a[href*="resy.com"]',
    'a[href*="opentable.com"]',
    'a[href*="yelp.com/reservations"]',
    'a[href*="book"]',
    '[class*="reserve"] a',
    '[class*="booking"] a',
]


@dataclass
class UrlContent:
    title: str = ""
    description: str = ""
    content: str = ""
    address: str | None = None
    phone: str | None = None
    hours: str | None = None
    reviews: list[str] = field(default_factory=list)
    rating: str | None = None
    price_range: str | None = None
    cuisine: str | None = None
    images: list[str] = field(default_factory=list)
    reservation_url: str | None = None


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _first_text(soup: BeautifulSoup, selectors: list[str], min_len: int, max_len: int) -> str | None:
    """Text of the first element of the first selector whose text length is within bounds."""
    for selector in selectors:
        element = soup.select_one(selector)
        if element is None:
            continue
        found = element.get_text(" ", strip=True)
        if min_len < len(found) < max_len:
            return _collapse(found)
    return None


def _meta_content(soup: BeautifulSoup, **attrs) -> str:
    tag = soup.find("meta", attrs=attrs)
    if tag and tag.get("content"):
        return tag["content"].strip()
    return ""


def _extract_title(soup: BeautifulSoup) -> str:
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(strip=True)
    og_title = _meta_content(soup, property="og:title")
    if og_title:
        return og_title
    h1 = soup.find("h1")
    return h1.get_text(strip=True) if h1 else ""


def _extract_phone(text: str) -> str | None:
    for pattern in PHONE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def _extract_hours(soup: BeautifulSoup, body_text: str) -> str | None:
    hours = _first_text(soup, HOURS_SELECTORS, 5, 500)
    if hours:
        return hours
    for pattern in HOURS_PATTERNS:
        match = pattern.search(body_text)
        if match:
            return match.group(1).strip()
    return None


def _extract_reviews(soup: BeautifulSoup) -> list[str]:
    for selector in REVIEW_SELECTORS:
        reviews = []
        for element in soup.select(selector)[:5]:
            text = _collapse(element.get_text(" ", strip=True))
            if 50 < len(text) < 1000:
                reviews.append(text)
        if reviews:
            return reviews
    return []


def _extract_rating(soup: BeautifulSoup) -> str | None:
    for selector in RATING_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        match = re.search(r"(\d+\.?\d*)\s*(?:/\s*5|out of 5|stars?)?", element.get_text(" ", strip=True), re.I)
        if match:
            return match.group(1)
    return None


def _extract_price_range(text: str) -> str | None:
    match = PRICE_PATTERN.search(text)
    return match.group(1) if match else None


def _extract_cuisine(soup: BeautifulSoup, body_text: str) -> str | None:
    cuisine = _first_text(soup, CUISINE_SELECTORS, 3, 100)
    if cuisine:
        return cuisine
    lower = body_text.lower()
    for cuisine_type in CUISINE_TYPES:
        if re.search(rf"{re.escape(cuisine_type.lower())}\s*(?:cuisine|restaurant|food|kitchen|cooking)", lower):
            return cuisine_type
    return None


def _extract_images(soup: BeautifulSoup, base_url: str) -> list[str]:
    images = []
    og_image = _meta_content(soup, property="og:image")
    if og_image:
        images.append(urljoin(base_url, og_image))

    for img in soup.find_all("img", src=True):
        if len(images) >= MAX_IMAGES:
            break
        src = img["src"]
        if "data:" in src or "svg" in src or "logo" in src or "icon" in src:
            continue
        width, height = img.get("width"), img.get("height")
        if width and width.isdigit() and int(width) < 200:
            continue
        if height and height.isdigit() and int(height) < 150:
            continue
        absolute = urljoin(base_url, src)
        if absolute not in images:
            images.append(absolute)
    return images[:MAX_IMAGES]


def _extract_reservation_url(soup: BeautifulSoup, base_url: str) -> str | None:
    for selector in RESERVATION_SELECTORS:
        link = soup.select_one(selector)
        if link is not None and link.get("href"):
            return urljoin(base_url, link["href"])
    return None


def parse_html(html: str, url: str) -> UrlContent:
    """Extract structured fields from a page; fields that are not found stay empty."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "iframe"]):
        tag.decompose()

    body = soup.body or soup
    full_text = _collapse(body.get_text(" "))
    body_text = full_text[:MAX_CONTENT_CHARS]

    return UrlContent(
        title=_extract_title(soup),
        description=_meta_content(soup, name="description") or _meta_content(soup, property="og:description"),
        content=body_text,
        address=_first_text(soup, ADDRESS_SELECTORS, 10, 200),
        phone=_extract_phone(full_text),
        hours=_extract_hours(soup, body_text),
        reviews=_extract_reviews(soup),
        rating=_extract_rating(soup),
        price_range=_extract_price_range(full_text),
        cuisine=_extract_cuisine(soup, body_text),
        images=_extract_images(soup, url),
        reservation_url=_extract_reservation_url(soup, url),
    )


def fetch_url_content(url: str, client: httpx.Client | None = None) -> UrlContent:
    """Fetch a page once and extract what we can. Never raises: failures give an empty UrlContent."""
    should_close = False
    if client is None:
        client = httpx.Client(timeout=FETCH_TIMEOUT, follow_redirects=True)
        should_close = True

    try:
        response = client.get(
            url,
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            },
            timeout=FETCH_TIMEOUT,
        )
        response.raise_for_status()
        content = parse_html(response.text, url)
        logger.info(f"Fetched '{url}': title={content.title!r}")
        return content
    except Exception as e:
        logger.error(f"Error fetching URL content for '{url}': {e}")
        return UrlContent()
    finally:
        if should_close:
            client.close()


def format_url_content_for_llm(content: UrlContent) -> str:
    parts = []
    if content.title:
        parts.append(f"Page Title: {content.title}")
    if content.description:
        parts.append(f"Description: {content.description}")
    if content.address:
        parts.append(f"Address Found: {content.address}")
    if content.phone:
        parts.append(f"Phone: {content.phone}")
    if content.hours:
        parts.append(f"Hours: {content.hours}")
    if content.rating:
        parts.append(f"Rating: {content.rating}/5")
    if content.price_range:
        parts.append(f"Price Range: {content.price_range}")
    if content.cuisine:
        parts.append(f"Cuisine/Type: {content.cuisine}")
    if content.reviews:
        sample = "\n".join(f"- {r[:300]}" for r in content.reviews[:3])
        parts.append(f"Sample Reviews:\n{sample}")
    if content.content:
        parts.append(f"Page Content (excerpt): {content.content[:2000]}")
    return "\n\n".join(parts)
