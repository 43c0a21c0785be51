import csv
import io

import orjson

from app.schemas.research import (
    CitationCreate,
    CitationSearchParams,
    CitationSemantics,
    CitationUpdate,
    PublicationAuthorIn,
    PublicationCreate,
    PublicationIdentifierIn,
    PublicationSearchParams,
    PublicationUpdate,
)
from app.services.citations import CitationService
from app.services.publications import PublicationService


async def _publication(store, title: str, **extra) -> str:
    response = await PublicationService(store).create_publication(PublicationCreate(title=title, **extra))
    assert response.success, response.error
    return response.data.id


async def test_create_and_fetch_publication(store) -> None:
    service = PublicationService(store)
    created = await service.create_publication(
        PublicationCreate(
            title="Dynamic assessment in practice",
            publication_year=2021,
            field="education",
            authors=[
                PublicationAuthorIn(author_id="r-2", name="B. Second", order=2),
                PublicationAuthorIn(author_id="r-1", name="A. First", order=1, contribution_type="first_author"),
            ],
            identifiers=[PublicationIdentifierIn(type="doi", value="10.1000/dyn.2021")],
        )
    )
    assert created.success
    assert [a.author_id for a in created.data.authors] == ["r-1", "r-2"]

    by_id = await service.get_publication(created.data.id)
    assert by_id.data.title == "Dynamic assessment in practice"

    by_doi = await service.get_publication_by_identifier("doi", "10.1000/dyn.2021")
    assert by_doi.data.id == created.data.id

    authored = await service.get_author_publications("r-2")
    assert [p.id for p in authored.data] == [created.data.id]


async def test_duplicate_publication_and_identifier(store) -> None:
    service = PublicationService(store)
    first = await service.create_publication(
        PublicationCreate(
            id="pub-1",
            title="Original",
            identifiers=[PublicationIdentifierIn(type="doi", value="10.1000/orig")],
        )
    )
    assert first.success

    again = await service.create_publication(PublicationCreate(id="pub-1", title="Copy"))
    assert again.success is False
    assert again.code == "DUPLICATE_PUBLICATION"

    clash = await service.create_publication(
        PublicationCreate(title="Other", identifiers=[PublicationIdentifierIn(type="doi", value="10.1000/orig")])
    )
    assert clash.code == "DUPLICATE_IDENTIFIER"


async def test_missing_publication_envelopes(store) -> None:
    service = PublicationService(store)
    assert (await service.get_publication("nope")).code == "PUBLICATION_NOT_FOUND"
    assert (await service.get_publication_by_identifier("doi", "10.0/none")).code == "PUBLICATION_NOT_FOUND"
    assert (await service.track_view("nope")).code == "PUBLICATION_NOT_FOUND"


async def test_view_and_download_counters(store) -> None:
    pub_id = await _publication(store, "Counting things")
    service = PublicationService(store)

    assert (await service.track_view(pub_id)).data == 1
    assert (await service.track_view(pub_id)).data == 2
    assert (await service.track_download(pub_id)).data == 1

    impact = await service.get_publication_impact_metrics(pub_id)
    assert impact.data["view_count"] == 2
    assert impact.data["download_count"] == 1


async def test_track_citation_increments_target_count(store) -> None:
    source = await _publication(store, "Citing paper")
    target = await _publication(store, "Cited paper", field="psychology")
    citations = CitationService(store)

    tracked = await citations.track_citation(
        CitationCreate(
            id="cit-1",
            source_publication_id=source,
            target_publication_id=target,
            citation_text="(Jones, 2019)",
            metadata={"page": "12"},
        )
    )
    assert tracked.success
    assert tracked.data.metadata == {"page": "12"}

    duplicate = await citations.track_citation(
        CitationCreate(id="cit-1", source_publication_id=source, target_publication_id=target)
    )
    assert duplicate.code == "DUPLICATE_CITATION"

    publication = await PublicationService(store).get_publication(target)
    assert publication.data.citation_count == 1

    # Counters never decrease.
    assert (await citations.delete_citation("cit-1")).success
    assert (await PublicationService(store).get_publication(target)).data.citation_count == 1
    assert (await citations.get_citation("cit-1")).code == "CITATION_NOT_FOUND"


async def test_search_update_verify_and_statistics(store) -> None:
    a = await _publication(store, "A")
    b = await _publication(store, "B")
    c = await _publication(store, "C")
    citations = CitationService(store)
    await citations.track_citation(CitationCreate(id="ab", source_publication_id=a, target_publication_id=b))
    await citations.track_citation(
        CitationCreate(id="ac", source_publication_id=a, target_publication_id=c, citation_type="bibliography")
    )
    await citations.track_citation(CitationCreate(id="cb", source_publication_id=c, target_publication_id=b))

    found = await citations.search_citations(CitationSearchParams(target_publication_id=b, sort_direction="asc"))
    assert found.data["total"] == 2
    assert {x.id for x in found.data["citations"]} == {"ab", "cb"}

    paged = await citations.search_citations(CitationSearchParams(page=2, limit=2))
    assert paged.data["total"] == 3
    assert len(paged.data["citations"]) == 1

    links = await citations.get_publication_citations(a)
    assert links.data["incoming_citations"] == []
    assert {x.id for x in links.data["outgoing_citations"]} == {"ab", "ac"}

    updated = await citations.update_citation(
        "ab",
        CitationUpdate(semantics=CitationSemantics(importance=10, explicitness=5, centrality=5)),
    )
    assert updated.data.semantics["importance"] == 10
    significance = await citations.citation_significance("ab")
    assert significance.data["significance"] == 7.0
    assert (await citations.citation_significance("ac")).data["significance"] == 0.0

    verified = await citations.verify_citation("ab", "reviewer-7")
    assert verified.data.verified is True
    assert verified.data.verified_by == "reviewer-7"
    assert verified.data.verified_at is not None

    stats = await citations.get_citation_statistics()
    assert stats.data["total_citations"] == 3
    assert stats.data["verified_citations"] == 1
    assert stats.data["citations_by_type"] == {"in_text": 2, "bibliography": 1}


async def test_import_and_extract(store) -> None:
    a = await _publication(store, "A")
    b = await _publication(store, "B")
    citations = CitationService(store)

    imported = await citations.import_citations(
        [
            CitationCreate(id="x1", source_publication_id=a, target_publication_id=b),
            CitationCreate(id="x1", source_publication_id=b, target_publication_id=a),
            CitationCreate(id="x2", source_publication_id=b, target_publication_id=a),
        ]
    )
    assert imported.data["imported"] == 2
    assert imported.data["failed"] == 1
    assert imported.data["results"][1]["code"] == "DUPLICATE_CITATION"

    extracted = await citations.extract_citations_from_text("Prior work [1, 2] disagrees (Smith, 2020).")
    assert [m["style"] for m in extracted.data["extracted_citations"]] == ["apa", "ieee"]


async def test_add_publication_identifier(store) -> None:
    service = PublicationService(store)
    owner = await _publication(store, "Owner", identifiers=[PublicationIdentifierIn(type="doi", value="10.1/a")])
    other = await _publication(store, "Other")

    clash = await service.add_publication_identifier(other, PublicationIdentifierIn(type="doi", value="10.1/a"))
    assert clash.success is False
    assert clash.code == "DUPLICATE_IDENTIFIER"
    assert (await service.get_publication(other)).data.identifiers == []

    same = await service.add_publication_identifier(owner, PublicationIdentifierIn(type="doi", value="10.1/a"))
    assert [i.value for i in same.data.identifiers] == ["10.1/a"]

    await service.add_publication_identifier(other, PublicationIdentifierIn(type="arxiv", value="2101.00001"))
    await service.add_publication_identifier(other, PublicationIdentifierIn(type="doi", value="10.1/b"))
    replaced = await service.add_publication_identifier(other, PublicationIdentifierIn(type="doi", value="10.1/c"))
    assert sorted((i.type, i.value) for i in replaced.data.identifiers) == [("arxiv", "2101.00001"), ("doi", "10.1/c")]

    # The replaced value is free again.
    assert (await service.add_publication_identifier(owner, PublicationIdentifierIn(type="isbn", value="10.1/b"))).success

    missing = await service.add_publication_identifier("nope", PublicationIdentifierIn(type="doi", value="10.1/z"))
    assert missing.code == "PUBLICATION_NOT_FOUND"


async def test_update_publication(store) -> None:
    service = PublicationService(store)
    taken = await _publication(store, "Taken", identifiers=[PublicationIdentifierIn(type="doi", value="10.1/taken")])
    pub_id = await _publication(
        store,
        "Draft title",
        authors=[PublicationAuthorIn(author_id="r-1", name="A. First")],
        identifiers=[PublicationIdentifierIn(type="doi", value="10.1/draft")],
    )

    updated = await service.update_publication(
        pub_id,
        PublicationUpdate(
            title="Final title",
            field="psychology",
            authors=[
                PublicationAuthorIn(author_id="r-2", name="B. Second", order=1, country="NZ"),
                PublicationAuthorIn(author_id="r-3", name="C. Third", order=2),
            ],
            identifiers=[PublicationIdentifierIn(type="doi", value="10.1/draft")],
        ),
    )
    assert updated.success, updated.error
    assert updated.data.title == "Final title"
    assert updated.data.field == "psychology"
    assert updated.data.abstract == ""
    assert [(a.author_id, a.country) for a in updated.data.authors] == [("r-2", "NZ"), ("r-3", None)]
    assert [i.value for i in updated.data.identifiers] == ["10.1/draft"]
    assert (await service.get_author_publications("r-1")).data == []

    clash = await service.update_publication(
        pub_id,
        PublicationUpdate(title="Should not stick", identifiers=[PublicationIdentifierIn(type="doi", value="10.1/taken")]),
    )
    assert clash.code == "DUPLICATE_IDENTIFIER"
    assert (await service.get_publication(pub_id)).data.title == "Final title"
    assert (await service.get_publication_by_identifier("doi", "10.1/taken")).data.id == taken

    nulled = await service.update_publication(pub_id, PublicationUpdate(title=None))
    assert nulled.code == "INVALID_PUBLICATION_UPDATE"
    assert (await service.update_publication("nope", PublicationUpdate(title="x"))).code == "PUBLICATION_NOT_FOUND"


async def test_delete_publication_frees_identifiers(store) -> None:
    service = PublicationService(store)
    pub_id = await _publication(
        store,
        "Retracted",
        authors=[PublicationAuthorIn(author_id="r-1", name="A. First")],
        identifiers=[PublicationIdentifierIn(type="doi", value="10.1/retracted")],
    )

    deleted = await service.delete_publication(pub_id)
    assert deleted.data == {"id": pub_id, "deleted": True}
    assert (await service.get_publication(pub_id)).code == "PUBLICATION_NOT_FOUND"
    assert (await service.get_publication_by_identifier("doi", "10.1/retracted")).code == "PUBLICATION_NOT_FOUND"
    assert (await service.get_author_publications("r-1")).data == []
    assert (await service.delete_publication(pub_id)).code == "PUBLICATION_NOT_FOUND"

    await _publication(store, "Reissued", identifiers=[PublicationIdentifierIn(type="doi", value="10.1/retracted")])


async def _search_catalogue(store) -> tuple[str, str, str]:
    wm = await _publication(
        store,
        "Working memory and reading",
        publication_year=2019,
        keywords=["Memory", "Reading"],
        authors=[PublicationAuthorIn(author_id="r-1", name="A. First")],
    )
    gm = await _publication(
        store,
        "Growth mindset interventions",
        publication_year=2022,
        keywords=["motivation"],
        publication_type="conference_paper",
        authors=[PublicationAuthorIn(author_id="r-2", name="B. Second")],
    )
    recall = await _publication(
        store,
        "Memory at 100% recall",
        authors=[PublicationAuthorIn(author_id="r-1", name="A. First")],
    )
    return wm, gm, recall


async def test_search_publications_filters_and_paging(store) -> None:
    wm, gm, recall = await _search_catalogue(store)
    await CitationService(store).track_citation(CitationCreate(source_publication_id=gm, target_publication_id=wm))
    service = PublicationService(store)

    async def ids(**params) -> list[str]:
        response = await service.search_publications(PublicationSearchParams(**params))
        assert response.success, response.error
        return [p.id for p in response.data["publications"]]

    assert await ids(title="MEMORY") == [wm, recall]
    assert await ids(title="%") == [recall]
    assert await ids(title="_") == []
    assert await ids(authors=["r-1"]) == [wm, recall]
    assert await ids(keywords=["memory"]) == [wm]
    assert await ids(published_after=2020) == [gm]
    assert await ids(published_before=2020) == [wm]
    assert await ids(min_citations=1) == [wm]
    assert await ids(publication_type="conference_paper") == [gm]

    page = await service.search_publications(PublicationSearchParams(sort_by="title", sort_direction="asc", page=2, limit=1))
    assert page.data["total"] == 3
    assert [p.id for p in page.data["publications"]] == [recall]

    keyword_page = await service.search_publications(
        PublicationSearchParams(keywords=["memory", "Motivation"], sort_by="title", sort_direction="asc", page=2, limit=1)
    )
    assert keyword_page.data["total"] == 2
    assert [p.id for p in keyword_page.data["publications"]] == [wm]


async def test_publication_statistics(store) -> None:
    await _search_catalogue(store)

    stats = await PublicationService(store).get_publication_statistics()
    assert stats.data["total_publications"] == 3
    assert stats.data["publications_by_type"] == {"conference_paper": 1, "journal_article": 2}
    assert stats.data["publications_by_status"] == {"published": 3}
    assert stats.data["publications_by_year"] == {"2019": 1, "2022": 1}


async def test_export_publications(store) -> None:
    pub_id = await _publication(
        store,
        "Working memory and reading",
        publication_year=2019,
        venue="Journal of Learning",
        authors=[
            PublicationAuthorIn(author_id="r-2", name="B. Second", order=2),
            PublicationAuthorIn(author_id="r-1", name="A. First", order=1),
        ],
        identifiers=[PublicationIdentifierIn(type="doi", value="10.1000/wm.2019")],
    )
    service = PublicationService(store)

    exported = await service.export_publications([pub_id, "missing"], "csv")
    assert exported.data["format"] == "csv"
    rows = list(csv.reader(io.StringIO(exported.data["data"])))
    assert rows == [
        ["id", "title", "authors", "year", "venue", "doi"],
        [pub_id, "Working memory and reading", "A. First; B. Second", "2019", "Journal of Learning", "10.1000/wm.2019"],
    ]

    bibtex = (await service.export_publications([pub_id], "bibtex")).data["data"]
    assert bibtex.startswith("@article{10.1000/wm.2019,")
    assert "author = {A. First and B. Second}" in bibtex
    assert "journal = {Journal of Learning}" in bibtex

    ris = (await service.export_publications([pub_id], "ris")).data["data"].splitlines()
    assert ris[0] == "TY  - JOUR"
    assert "AU  - A. First" in ris
    assert "DO  - 10.1000/wm.2019" in ris
    assert ris[-1] == "ER  - "

    as_json = orjson.loads((await service.export_publications([pub_id], "json")).data["data"])
    assert [p["id"] for p in as_json] == [pub_id]

    unsupported = await service.export_publications([pub_id], "endnote")
    assert unsupported.success is False
    assert unsupported.code == "UNSUPPORTED_EXPORT_FORMAT"


async def test_export_citations(store) -> None:
    source = await _publication(store, "Citing paper")
    target = await _publication(
        store,
        "Cited book",
        publication_type="book",
        publication_year=2015,
        authors=[PublicationAuthorIn(author_id="r-1", name="A. First")],
    )
    citations = CitationService(store)
    await citations.track_citation(
        CitationCreate(id="c-1", source_publication_id=source, target_publication_id=target, citation_text="(First, 2015)")
    )

    bibtex = (await citations.export_citations(["c-1", "c-missing"], "bibtex")).data["data"]
    assert bibtex.startswith("@book{c-1,")
    assert "title = {Cited book}" in bibtex

    rows = list(csv.reader(io.StringIO((await citations.export_citations(["c-1"], "csv")).data["data"])))
    assert rows[1] == ["c-1", source, target, "in_text", "False", "(First, 2015)"]

    as_json = orjson.loads((await citations.export_citations(["c-1"], "json")).data["data"])
    assert as_json[0]["target"]["id"] == target

    assert (await citations.export_citations(["c-1"], "xml")).code == "UNSUPPORTED_EXPORT_FORMAT"
