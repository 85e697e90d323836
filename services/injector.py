"""
Tracking pixel injection.

Embeds a 1x1 image reference into outgoing message content and returns the
identifier it was issued for, so the caller can correlate the sent message
with later open events.

Insertion never happens at an arbitrary offset. For markup, the pixel goes
right before the last closing ``</body>`` tag outside HTML comments; without
one it is prepended (after a leading doctype) or appended at the document
boundary. Content whose end lies inside an unterminated tag or an unclosed
comment cannot be appended to and is rejected with :class:`InjectionError`
rather than sent with a pixel that never renders.
"""

from __future__ import annotations

import html
import re
from typing import Literal, NamedTuple, Optional
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict

from errors import InjectionError
from shared.generators import IdentifierGenerator
from shared.logging import get_logger
from shared.validators import validate_pixel_endpoint

log = get_logger(__name__)

CLOSING_BODY_RE = re.compile(r"</body\s*>", re.IGNORECASE)
# "<" that opens a tag, comment or declaration and is never closed
UNTERMINATED_TAG_RE = re.compile(r"<[A-Za-z/!][^>]*\Z")
# closed comment, or one left open until the end of the document
COMMENT_RE = re.compile(r"<!--(?:.*?(?P<close>-->)|.*\Z)", re.DOTALL)
LEADING_DOCTYPE_RE = re.compile(r"\s*<!DOCTYPE[^>]*>", re.IGNORECASE)

PIXEL_STYLES = {
    "1x1": "display:none;width:1px;height:1px;border:0;",
    "hidden": "display:none;width:0;height:0;border:0;",
}


class PixelOptions(BaseModel):
    """Per-call injection options. Unset fields fall back to injector defaults."""

    model_config = ConfigDict(populate_by_name=True)

    pixel_url: Optional[str] = None
    pixel_size: Optional[Literal["1x1", "hidden"]] = None
    position: Optional[Literal["top", "bottom"]] = None
    campaign_id: Optional[str] = None
    email_id: Optional[str] = None
    recipient: Optional[str] = None


class InjectionResult(NamedTuple):
    content: str
    pixel_id: str


def build_pixel_url(
    base_url: str,
    pixel_id: str,
    campaign_id: Optional[str] = None,
    email_id: Optional[str] = None,
    recipient: Optional[str] = None,
) -> str:
    """Append the tracking query parameters to *base_url*.

    ``pixelId`` is always present; the others only when supplied. Values are
    UTF-8 percent-encoded so any Unicode recipient round-trips losslessly.
    Query parameters already on *base_url* are kept in front.

    Raises:
        InjectionError: *base_url* is not an absolute http(s) URL.
    """
    if not validate_pixel_endpoint(base_url):
        raise InjectionError(
            "Pixel endpoint must be an absolute http(s) URL",
            field="pixel_url",
            details={"pixel_url": base_url},
        )

    parts = urlsplit(base_url)
    params = parse_qsl(parts.query, keep_blank_values=True)
    params.append(("pixelId", pixel_id))
    if campaign_id:
        params.append(("campaignId", campaign_id))
    if email_id:
        params.append(("emailId", email_id))
    if recipient:
        params.append(("recipient", recipient))

    query = urlencode(params, quote_via=quote, safe="")
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", query, ""))


def render_pixel_tag(pixel_url: str, pixel_size: str) -> str:
    src = html.escape(pixel_url, quote=True)
    style = PIXEL_STYLES[pixel_size]
    if pixel_size == "1x1":
        return (
            f'<img src="{src}" width="1" height="1" alt="" '
            f'aria-hidden="true" style="{style}" />'
        )
    return f'<img src="{src}" alt="" aria-hidden="true" style="{style}" />'


def _ends_inside_tag(markup: str) -> bool:
    return UNTERMINATED_TAG_RE.search(markup) is not None


def _ends_inside_comment(comments: list[re.Match]) -> bool:
    return bool(comments) and comments[-1].group("close") is None


def _last_closing_body(markup: str, comments: list[re.Match]) -> Optional[re.Match]:
    """Last ``</body>`` that is real markup, not text inside a comment."""
    closing = None
    for match in CLOSING_BODY_RE.finditer(markup):
        if not any(c.start() <= match.start() < c.end() for c in comments):
            closing = match
    return closing


class PixelInjector:
    """Issues pixel identifiers and embeds them into message content.

    Args:
        generator: Identifier source shared by all injections.
        pixel_url: Default base endpoint for the pixel image.
        pixel_size: Default size style (``"1x1"`` or ``"hidden"``).
        position: Default boundary (``"top"`` or ``"bottom"``) used when the
            content has no closing body tag.
    """

    def __init__(
        self,
        generator: IdentifierGenerator,
        pixel_url: str,
        pixel_size: Literal["1x1", "hidden"] = "1x1",
        position: Literal["top", "bottom"] = "bottom",
    ) -> None:
        self.generator = generator
        self.pixel_url = pixel_url
        self.pixel_size = pixel_size
        self.position = position

    def _issue(self, opts: PixelOptions) -> tuple[str, str]:
        """Issue an identifier and render its tag."""
        pixel_id = self.generator.generate()
        url = build_pixel_url(
            opts.pixel_url or self.pixel_url,
            pixel_id,
            campaign_id=opts.campaign_id,
            email_id=opts.email_id,
            recipient=opts.recipient,
        )
        return pixel_id, render_pixel_tag(url, opts.pixel_size or self.pixel_size)

    def inject_into_document(
        self, document: str, options: Optional[PixelOptions] = None
    ) -> InjectionResult:
        """Embed a pixel into HTML markup."""
        if not isinstance(document, str):
            raise InjectionError("Document must be a string", field="content")
        opts = options or PixelOptions()

        comments = list(COMMENT_RE.finditer(document))
        closing = _last_closing_body(document, comments)

        if closing is not None:
            pixel_id, tag = self._issue(opts)
            at = closing.start()
            modified = document[:at] + tag + document[at:]
            anchor = "body"
        else:
            anchor = opts.position or self.position
            if anchor == "bottom":
                if _ends_inside_tag(document):
                    raise InjectionError(
                        "Document ends inside an unterminated tag; cannot append pixel",
                        field="content",
                    )
                if _ends_inside_comment(comments):
                    raise InjectionError(
                        "Document ends inside an unclosed comment; cannot append pixel",
                        field="content",
                    )
            pixel_id, tag = self._issue(opts)
            if anchor == "top":
                doctype = LEADING_DOCTYPE_RE.match(document)
                at = doctype.end() if doctype else 0
                modified = document[:at] + tag + document[at:]
            else:
                modified = document + tag

        log.debug("pixel_injected", pixel_id=pixel_id, kind="document", anchor=anchor)
        return InjectionResult(modified, pixel_id)

    def inject_into_plain_content(
        self, content: str, options: Optional[PixelOptions] = None
    ) -> InjectionResult:
        """Embed a pixel at the start or end of non-markup content."""
        if not isinstance(content, str):
            raise InjectionError("Content must be a string", field="content")
        opts = options or PixelOptions()

        position = opts.position or self.position
        pixel_id, tag = self._issue(opts)
        modified = tag + content if position == "top" else content + tag

        log.debug("pixel_injected", pixel_id=pixel_id, kind="plain", anchor=position)
        return InjectionResult(modified, pixel_id)
