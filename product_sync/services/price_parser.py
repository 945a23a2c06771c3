"""
Price extraction from product pages.

Strategies are tried in a fixed order and the first one that finds a
regular price wins:

1. class selectors (generic price classes, ids, microdata)
2. ``$`` amounts anywhere in the markup
3. the site-specific "per item" price class
4. "per item / per unit / per piece / each" text anywhere in the page

Sale prices come from sale-oriented classes, or from a crossed-out price
that is larger than the regular one (the two are swapped once).
"""
import logging
import math
import re
from typing import Iterable, List

from bs4 import BeautifulSoup, Tag

from product_sync.constants.sync import PRICE_CEILING
from product_sync.schemas.sync_schemas import ExtractedPrices

logger = logging.getLogger(__name__)

PRICE_CLASSES = [
    "price",
    "product-price",
    "regular-price",
    "current-price",
    "price-current",
    "woocommerce-Price-amount",
    "amount",
    "wc-price",
    "product-price-value",
]
PRICE_IDS = ["price", "product-price"]
PRICE_ITEMPROPS = ["price", "lowPrice"]

SALE_CLASSES = [
    "sale-price",
    "special-price",
    "discount-price",
    "offer-price",
    "reduced-price",
    "on-sale",
    "price-sale",
]

CROSSED_OUT_CLASSES = [
    "strikethrough",
    "line-through",
    "was-price",
    "old-price",
    "crossed-out",
]
CROSSED_OUT_TAGS = ("del", "s", "strike")

SITE_PRICE_CLASS = "gentronics-price"

_NUMBER = r"(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)"

# Order matters: a $-prefixed amount is preferred over any bare number
TEXT_PRICE_PATTERNS = [
    re.compile(r"(-)?\$\s*" + _NUMBER),
    re.compile(r"(-)?(?<![\d.,])" + _NUMBER),
]

DOCUMENT_PRICE_PATTERNS = [
    re.compile(r"\$\s*(\d{1,3}(?:,\d{3})*\.\d{2}|\d+\.\d{2})"),
    re.compile(r"\"price\"[^>]*>.*?\$?(\d{1,3}(?:,\d{3})*\.\d{2})", re.IGNORECASE | re.DOTALL),
    re.compile(r"class=\"[^\"]*price[^\"]*\"[^>]*>.*?\$?(\d{1,3}(?:,\d{3})*\.\d{2})", re.IGNORECASE | re.DOTALL),
]

SITE_PER_ITEM_PATTERN = re.compile(
    r"\$?\s*" + _NUMBER + r"\s*per\s*(?:item|unit|piece)", re.IGNORECASE
)
SITE_ANY_DOLLAR_PATTERN = re.compile(r"\$\s*" + _NUMBER)

PER_ITEM_PATTERN = re.compile(
    r"(?<![\d.,])\$?\s*(\d{1,4}(?:,\d{3})*(?:\.\d{1,2})?)\s*"
    r"(?:(?:per\s*|/\s*)(?:item|unit|piece|each)|each)\b",
    re.IGNORECASE,
)


def _to_float(raw: str) -> float:
    try:
        return float(raw.replace(",", ""))
    except ValueError:
        return 0.0


def extract_price_from_text(text: str) -> float:
    """
    Extract a positive price from a piece of text.

    Accepts ``$1,234.56``, ``1234.56`` and plain integers. Thousands
    separators are stripped. Returns 0 when nothing positive is found.
    """
    if not text:
        return 0.0
    text = text.strip()
    for pattern in TEXT_PRICE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        if match.group(1):
            return 0.0
        price = _to_float(match.group(2))
        if price > 0 and math.isfinite(price):
            return price
    return 0.0


def _plausible(price: float) -> bool:
    return price > 0 and math.isfinite(price) and price < PRICE_CEILING


def _class_string(tag: Tag) -> str:
    classes = tag.get("class") or []
    if isinstance(classes, str):
        return classes
    return " ".join(classes)


def _has_class_token(tag: Tag, tokens: Iterable[str]) -> bool:
    class_string = _class_string(tag)
    return any(token in class_string for token in tokens)


def _is_crossed_out(tag: Tag) -> bool:
    if tag.name in CROSSED_OUT_TAGS:
        return True
    if _has_class_token(tag, CROSSED_OUT_CLASSES):
        return True
    style = (tag.get("style") or "").replace(" ", "").lower()
    return "text-decoration:line-through" in style or "line-through" in style


def _is_sale(tag: Tag) -> bool:
    return _has_class_token(tag, SALE_CLASSES)


def _text_without_crossed_out(element: Tag) -> str:
    """Text of an element, skipping any crossed-out descendants."""
    parts = []
    for string in element.find_all(string=True):
        node = string.parent
        skip = False
        while node is not None and node is not element:
            if _is_crossed_out(node):
                skip = True
                break
            node = node.parent
        if not skip:
            parts.append(str(string))
    return " ".join(parts)


class PriceParser:
    """Extract (regular, sale) prices from raw HTML."""

    def __init__(self, site_price_class: str = SITE_PRICE_CLASS):
        self.site_price_class = site_price_class

    def parse(self, html: str) -> ExtractedPrices:
        """Never raises; ``regular_price == 0`` means no price was found."""
        if not html:
            return ExtractedPrices()
        try:
            return self._parse(html)
        except Exception as e:
            logger.error(f"Price parsing failed: {e}", exc_info=True)
            return ExtractedPrices()

    def _parse(self, html: str) -> ExtractedPrices:
        soup = BeautifulSoup(html, "html.parser")
        prices = ExtractedPrices()

        prices.regular_price = self._regular_from_selectors(soup)

        if not prices.found:
            prices.regular_price = self._regular_from_document(html)
            if prices.found:
                logger.debug(f"Found regular price using regex: {prices.regular_price}")

        if prices.found:
            self._detect_sale_price(soup, prices)

        if not prices.found:
            site_prices = self._site_specific_prices(soup)
            if site_prices.found:
                logger.debug(
                    f"Found prices using site price class: Regular {site_prices.regular_price}, "
                    f"Sale {site_prices.sale_price}"
                )
                prices = site_prices

        if not prices.found:
            per_item = self._per_item_prices(soup.get_text(" "))
            if per_item.found:
                logger.debug(
                    f"Found prices using per-item pattern: Regular {per_item.regular_price}, "
                    f"Sale {per_item.sale_price}"
                )
                prices = per_item

        return prices

    # ==================== Strategy 1: selectors ====================

    def _regular_candidates(self, soup: BeautifulSoup) -> Iterable[Tag]:
        for token in PRICE_CLASSES:
            for node in soup.find_all(class_=re.compile(re.escape(token))):
                yield node
        for element_id in PRICE_IDS:
            for node in soup.find_all(id=element_id):
                yield node
        for prop in PRICE_ITEMPROPS:
            for node in soup.find_all(attrs={"itemprop": prop}):
                yield node

    def _regular_from_selectors(self, soup: BeautifulSoup) -> float:
        for node in self._regular_candidates(soup):
            # Sale and crossed-out prices are handled by the sale pass
            if _is_sale(node) or _is_crossed_out(node):
                continue
            text = node.get("content") or _text_without_crossed_out(node)
            price = extract_price_from_text(text)
            if _plausible(price):
                logger.debug(f"Found regular price in <{node.name} class='{_class_string(node)}'>: {price}")
                return price
        return 0.0

    # ==================== Strategy 2: document regex ====================

    def _regular_from_document(self, html: str) -> float:
        for pattern in DOCUMENT_PRICE_PATTERNS:
            for match in pattern.findall(html):
                price = _to_float(match)
                if _plausible(price):
                    return price
        return 0.0

    # ==================== Sale detection ====================

    def _detect_sale_price(self, soup: BeautifulSoup, prices: ExtractedPrices) -> None:
        for token in SALE_CLASSES:
            for node in soup.find_all(class_=re.compile(re.escape(token))):
                price = extract_price_from_text(node.get_text(" "))
                if _plausible(price) and price < prices.regular_price:
                    prices.sale_price = price
                    logger.debug(f"Found sale price using class '{token}': {price}")
                    return

        for node in soup.find_all(_is_crossed_out):
            price = extract_price_from_text(node.get_text(" "))
            if not _plausible(price):
                continue
            if prices.sale_price == 0 and price > prices.regular_price:
                prices.sale_price = prices.regular_price
                prices.regular_price = price
                logger.debug(
                    f"Found crossed-out regular price: {price}, sale price: {prices.sale_price}"
                )
            return

    # ==================== Strategy 3: site-specific class ====================

    def _site_price_from_text(self, text: str) -> float:
        text = text.strip()
        match = SITE_PER_ITEM_PATTERN.search(text) or SITE_ANY_DOLLAR_PATTERN.search(text)
        if match:
            price = _to_float(match.group(1))
            if _plausible(price):
                return price
        return 0.0

    def _site_specific_prices(self, soup: BeautifulSoup) -> ExtractedPrices:
        token = self.site_price_class
        found: List[float] = []

        primary = soup.find_all(
            lambda tag: tag.name == "p" and _has_class_token(tag, [token]) and _has_class_token(tag, ["price"])
        )
        logger.debug(f"Trying site price class - found {len(primary)} elements")
        for node in primary:
            price = self._site_price_from_text(node.get_text())
            if price > 0:
                found.append(price)

        if not found:
            fallbacks = [
                lambda tag: _has_class_token(tag, [token]),
                lambda tag: tag.name == "p" and _has_class_token(tag, ["price"])
                and "per item" in tag.get_text().lower(),
            ]
            for query in fallbacks:
                price = self._first_site_price(soup.find_all(query))
                if price > 0:
                    found.append(price)
                    break

        return self._highest_two(found)

    def _first_site_price(self, nodes: List[Tag]) -> float:
        for node in nodes:
            price = self._site_price_from_text(node.get_text())
            if price > 0:
                return price
        return 0.0

    # ==================== Strategy 4: per-item text ====================

    def _per_item_prices(self, text: str) -> ExtractedPrices:
        found = [
            price for price in (_to_float(m) for m in PER_ITEM_PATTERN.findall(text))
            if _plausible(price)
        ]
        return self._highest_two(found)

    @staticmethod
    def _highest_two(found: List[float]) -> ExtractedPrices:
        ordered = sorted(set(found), reverse=True)
        if len(ordered) >= 2:
            return ExtractedPrices(regular_price=ordered[0], sale_price=ordered[1])
        if len(ordered) == 1:
            return ExtractedPrices(regular_price=ordered[0])
        return ExtractedPrices()
