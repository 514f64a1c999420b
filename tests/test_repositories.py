from database import NOTES, PAPERS, USERS, MemoryBackend, RecordStore
from main import AppContext
from repositories import ContentRepository
from schemas import Content, User
from seed import seed_store


def make_user(id, email, **extra):
    return User(id=id, email=email, name=extra.pop("name", id.title()), department="computational",
                created_at="2024-05-01", **extra)


def paper(id, created_at, downloads=0, department="computational", title=None, **extra):
    return {
        "id": id,
        "kind": "paper",
        "title": title or f"Paper {id}",
        "subject": extra.pop("subject", "CS101"),
        "department": department,
        "uploader_id": extra.pop("uploader_id", "1"),
        "downloads": downloads,
        "created_at": created_at,
        **extra,
    }


# ----------------- Seed -----------------

def test_seed_fills_empty_store(store):
    assert seed_store(store) == ["papershare_users", "papershare_papers", "papershare_notes"]
    assert len(store.get(USERS)) == 2
    assert len(store.get(PAPERS)) == 3


def test_seed_is_idempotent(seeded_store):
    seeded_store.set(USERS, [])
    assert seed_store(seeded_store) == []
    assert seeded_store.get(USERS) == []


# ----------------- Users -----------------

def test_find_by_email_ignores_case(ctx):
    assert ctx.users.find_by_email("John@Example.com").id == "1"
    assert ctx.users.find_by_email("nobody@example.com") is None


def test_create_appends(empty_ctx):
    created = empty_ctx.users.create(make_user("u1", "a@example.com"))
    assert created.id == "u1"
    assert [u.id for u in empty_ctx.users.all()] == ["u1"]


def test_points_are_derived(ctx):
    john = ctx.users.get("1")
    assert john.points == 15 * 10 + 45 * 2


def test_update_merges_shallowly(ctx):
    updated = ctx.users.update("1", name="Johnny", starred_papers=["3"])
    assert updated.name == "Johnny"
    assert updated.starred_papers == ["3"]
    assert updated.email == "john@example.com"
    assert ctx.users.get("1").starred_papers == ["3"]


def test_update_unknown_user_is_noop(ctx):
    before = ctx.store.get(USERS)
    assert ctx.users.update("missing", name="X") is None
    assert ctx.store.get(USERS) == before


def test_update_refreshes_session(ctx):
    ctx.session.set(ctx.users.get("1"))
    ctx.users.update("1", name="Johnny")
    assert ctx.session.get().name == "Johnny"


def test_update_leaves_other_session_alone(ctx):
    ctx.session.set(ctx.users.get("2"))
    ctx.users.update("1", name="Johnny")
    assert ctx.session.get().name == "Jane Smith"


def test_sessions_are_isolated(ctx):
    other = AppContext(RecordStore(MemoryBackend()))
    seed_store(other.store)
    ctx.auth.login("john@example.com")
    assert ctx.session.get().id == "1"
    assert other.session.get() is None


def test_increment_counters(ctx):
    user = ctx.users.increment_counters("1", uploads=1, downloads=2)
    assert (user.uploads_count, user.downloads_count) == (16, 47)
    assert ctx.users.increment_counters("missing", uploads=1) is None


# ----------------- Content -----------------

def test_list_filters_by_department(ctx):
    for department in ("computational", "business", "commerce", "humanities"):
        for item in ctx.papers.list(department=department) + ctx.notes.list(department=department):
            assert item.department == department
    assert [p.id for p in ctx.papers.list(department="commerce")] == ["3"]
    assert ctx.papers.list(department="humanities") == []


def test_list_filters_by_subject_and_section(ctx):
    assert [p.id for p in ctx.papers.list(subject="MBA502")] == ["2"]
    assert {p.id for p in ctx.papers.list(section="UG")} == {"1", "3"}


def test_recent_order_is_non_increasing(ctx):
    stamps = [p.created_at for p in ctx.papers.list()]
    assert stamps == sorted(stamps, reverse=True)
    assert [n.id for n in ctx.notes.list()] == ["2", "1", "3"]


def test_popular_order_is_stable(store):
    store.set(PAPERS, [
        paper("a", "2024-01-01", downloads=5),
        paper("b", "2024-01-02", downloads=9),
        paper("c", "2024-01-03", downloads=5),
        paper("d", "2024-01-04", downloads=1),
    ])
    items = ContentRepository(store, "paper").list(sort="popular")
    assert [p.id for p in items] == ["b", "a", "c", "d"]


def test_title_order(store):
    store.set(PAPERS, [paper("a", "2024-01-01", title="beta"), paper("b", "2024-01-02", title="Alpha")])
    assert [p.title for p in ContentRepository(store, "paper").list(sort="title")] == ["Alpha", "beta"]


def test_pagination(ctx):
    all_ids = [p.id for p in ctx.papers.list()]
    assert [p.id for p in ctx.papers.list(limit=2)] == all_ids[:2]
    assert [p.id for p in ctx.papers.list(limit=2, offset=2)] == all_ids[2:]
    # offset alone does not paginate
    assert [p.id for p in ctx.papers.list(offset=2)] == all_ids


def test_search_is_case_insensitive(ctx):
    assert [p.id for p in ctx.papers.search("strategic")] == ["2"]
    assert [p.id for p in ctx.papers.search("cs301")] == ["1"]
    assert [n.id for n in ctx.notes.search("LAB PROCEDURES")] == ["3"]


def test_search_filters_and_limits(ctx):
    assert len(ctx.papers.search("")) == 3
    assert len(ctx.papers.search("", limit=1)) == 1
    assert [p.id for p in ctx.papers.search("paper", department="commerce")] == ["3"]
    assert ctx.papers.search("no such thing") == []


def test_search_filters_by_section_and_tag(ctx, store):
    assert [p.id for p in ctx.papers.search("", section="UG")] == ["1", "3"]
    store.modify(PAPERS, lambda records: records.append(paper("t", "2024-01-01", section="PG", tags=["UG"])) or True)
    assert [p.id for p in ctx.papers.search("", section="UG")] == ["1", "3", "t"]
    assert [p.id for p in ctx.papers.search("", section="PG")] == ["2", "t"]


def test_search_sort_orders(ctx):
    assert [p.id for p in ctx.papers.search("", sort="popular")] == ["3", "1", "2"]
    assert [p.id for p in ctx.papers.search("", sort="title")] == ["1", "3", "2"]
    assert [p.id for p in ctx.papers.search("exam", sort="popular", limit=1)] == ["3"]


def test_search_matches_note_body(store):
    store.set(NOTES, [{**paper("n1", "2024-01-01"), "kind": "note", "content": "Eigenvalues of symmetric matrices"}])
    notes = ContentRepository(store, "note")
    assert [n.id for n in notes.search("eigenvalues")] == ["n1"]
    assert notes.search("determinants") == []


def test_create_assigns_fields(empty_ctx):
    item = empty_ctx.papers.create(title="Midterm", subject="CS301", department="computational",
                                   uploader_id="u1", downloads=99)
    assert len(item.id) == 36 and "-" in item.id
    assert item.downloads == 0
    assert item.kind == "paper"
    assert item.created_at
    assert empty_ctx.papers.get(item.id).model_dump() == item.model_dump()


def test_increment_downloads_touches_one_record(ctx):
    before = {p.id: p.downloads for p in ctx.papers.all()}
    item = ctx.papers.increment_downloads("2")
    after = {p.id: p.downloads for p in ctx.papers.all()}
    assert item.downloads == before["2"] + 1
    assert after == {**before, "2": before["2"] + 1}
    assert {n.id: n.downloads for n in ctx.notes.all()}["2"] == 178


def test_increment_downloads_unknown(ctx):
    assert ctx.papers.increment_downloads("missing") is None


def test_get_many_skips_missing(ctx):
    assert [p.id for p in ctx.papers.get_many(["3", "ghost", "1"])] == ["1", "3"]


def test_count_by_department(ctx):
    counts = ctx.notes.count_by_department()
    assert counts["computational"] == 1
    assert counts["humanities"] == 0


def test_resolve_uploader_names(ctx, store):
    store.modify(PAPERS, lambda records: records.append(paper("x", "2024-04-01", uploader_id="gone")) or True)
    views = {v.id: v for v in ContentRepository.resolve_uploader_names(ctx.papers.all(), ctx.users)}
    assert views["1"].uploader_name == "John Doe"
    assert views["2"].uploader_name == "Jane Smith"
    assert views["x"].uploader_name == "Unknown"


def test_malformed_records_are_skipped(store):
    store.set(PAPERS, [paper("ok", "2024-01-01"), {"id": "bad"}])
    assert [p.id for p in ContentRepository(store, "paper").all()] == ["ok"]
    assert isinstance(ContentRepository(store, "paper").all()[0], Content)
