from typing import NamedTuple

from signage.schemas.media import MediaType


class ResolvedIdentity(NamedTuple):
    identifier: str
    source_ref: str | None
    page_name: str | None


def resolve_identity(media_type: MediaType, raw_ref: str | None, page_name: str | None = None) -> ResolvedIdentity:
    """Derive the manifest identifier of a media item.

    Pages of an embedded report are keyed by ``<report>_<page>`` so several
    pages of one report can sit in the same manifest. Everything else is
    keyed by the raw reference itself: the stored filename for uploads, the
    address for URLs. An empty identifier is returned as-is and left for the
    manifest store to reject.
    """
    ref = (raw_ref or "").strip()
    page = (page_name or "").strip()
    if media_type == MediaType.embedded_report and ref and page:
        return ResolvedIdentity(f"{ref}_{page}", ref, page)
    return ResolvedIdentity(ref, None, None)
