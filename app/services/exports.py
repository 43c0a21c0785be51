from __future__ import annotations

import csv
import io
from collections.abc import Sequence

import orjson

from app.core.errors import ValidationError
from app.schemas.research import CitationOut, PublicationOut

EXPORT_FORMATS = ("json", "bibtex", "csv", "ris")

_BIBTEX_TYPES = {
    "journal_article": "article",
    "book": "book",
    "book_chapter": "inbook",
    "conference_paper": "inproceedings",
    "thesis": "phdthesis",
    "technical_report": "techreport",
    "preprint": "unpublished",
}

_RIS_TYPES = {
    "journal_article": "JOUR",
    "book": "BOOK",
    "book_chapter": "CHAP",
    "conference_paper": "CONF",
    "thesis": "THES",
    "patent": "PAT",
}


def _check_format(fmt: str) -> None:
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"Unsupported export format: {fmt}", code="UNSUPPORTED_EXPORT_FORMAT")


def doi_of(publication: PublicationOut) -> str | None:
    for ident in publication.identifiers:
        if ident.type == "doi":
            return ident.value
    return None


def _bibtex_entry(key: str, publication: PublicationOut) -> str:
    entry_type = _BIBTEX_TYPES.get(publication.publication_type, "misc")
    fields = [("title", publication.title)]
    if publication.authors:
        fields.append(("author", " and ".join(a.name for a in sorted(publication.authors, key=lambda a: a.order))))
    if publication.publication_year:
        fields.append(("year", str(publication.publication_year)))
    if publication.venue:
        fields.append(("journal", publication.venue))
    doi = doi_of(publication)
    if doi:
        fields.append(("doi", doi))
    body = ",\n".join(f"  {name} = {{{value}}}" for name, value in fields)
    return f"@{entry_type}{{{key},\n{body}\n}}"


def _ris_entry(key: str, publication: PublicationOut) -> str:
    lines = [f"TY  - {_RIS_TYPES.get(publication.publication_type, 'GEN')}", f"ID  - {key}", f"T1  - {publication.title}"]
    for author in sorted(publication.authors, key=lambda a: a.order):
        lines.append(f"AU  - {author.name}")
    if publication.publication_year:
        lines.append(f"PY  - {publication.publication_year}")
    if publication.venue:
        lines.append(f"JO  - {publication.venue}")
    doi = doi_of(publication)
    if doi:
        lines.append(f"DO  - {doi}")
    lines.append("ER  - ")
    return "\n".join(lines)


def render_publications(publications: Sequence[PublicationOut], fmt: str) -> str:
    _check_format(fmt)
    if fmt == "json":
        return orjson.dumps([p.model_dump(mode="json") for p in publications], option=orjson.OPT_INDENT_2).decode()
    if fmt == "bibtex":
        return "\n\n".join(_bibtex_entry(doi_of(p) or p.id, p) for p in publications)
    if fmt == "ris":
        return "\n\n".join(_ris_entry(p.id, p) for p in publications)

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["id", "title", "authors", "year", "venue", "doi"])
    for p in publications:
        writer.writerow(
            [
                p.id,
                p.title,
                "; ".join(a.name for a in sorted(p.authors, key=lambda a: a.order)),
                p.publication_year or "",
                p.venue or "",
                doi_of(p) or "",
            ]
        )
    return buffer.getvalue()


def render_citations(citations: Sequence[tuple[CitationOut, PublicationOut | None]], fmt: str) -> str:
    """Each citation is rendered as a reference to its target publication, keyed by citation id."""
    _check_format(fmt)
    if fmt == "json":
        payload = [
            {**c.model_dump(mode="json"), "target": t.model_dump(mode="json") if t else None} for c, t in citations
        ]
        return orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode()
    if fmt == "bibtex":
        return "\n\n".join(_bibtex_entry(c.id, t) for c, t in citations if t is not None)
    if fmt == "ris":
        return "\n\n".join(_ris_entry(c.id, t) for c, t in citations if t is not None)

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["id", "source_publication_id", "target_publication_id", "citation_type", "verified", "citation_text"])
    for c, _ in citations:
        writer.writerow(
            [c.id, c.source_publication_id, c.target_publication_id, c.citation_type.value, c.verified, c.citation_text]
        )
    return buffer.getvalue()
