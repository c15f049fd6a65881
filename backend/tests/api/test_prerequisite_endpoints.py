"""
前置依赖API端点测试
"""
from nrghax.core.config import settings
from nrghax.crud import hack, level, progress
from nrghax.schemas.content import HackCreate, LevelCreate

API = settings.API_V1_STR


def _add_edge(client, content_id, prerequisite_content_id, kind="hack"):
    return client.post(f"{API}/prerequisites", json={
        "content_id": content_id,
        "prerequisite_content_id": prerequisite_content_id,
        "content_kind": kind
    })


def test_create_list_and_delete_edge(client):
    response = _add_edge(client, "cold-shower", "breathing")
    assert response.status_code == 201
    body = response.json()
    assert body["code"] == 201
    assert body["data"]["content_id"] == "cold-shower"

    edges = client.get(f"{API}/prerequisites").json()["data"]
    assert [(e["content_id"], e["prerequisite_content_id"]) for e in edges] == [("cold-shower", "breathing")]
    assert client.get(f"{API}/prerequisites", params={"kind": "level"}).json()["data"] == []

    response = client.delete(
        f"{API}/prerequisites",
        params={"content_id": "cold-shower", "prerequisite_content_id": "breathing"}
    )
    assert response.status_code == 200
    assert client.get(f"{API}/prerequisites").json()["data"] == []


def test_delete_missing_edge_returns_404(client):
    response = client.delete(f"{API}/prerequisites", params={"content_id": "a", "prerequisite_content_id": "b"})
    assert response.status_code == 404


def test_self_loop_is_rejected(client):
    response = _add_edge(client, "breathing", "breathing")
    assert response.status_code == 422


def test_duplicate_edge_is_rejected(client):
    _add_edge(client, "cold-shower", "breathing")

    response = _add_edge(client, "cold-shower", "breathing")

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == 409
    assert body["data"] is None


def test_cycle_is_rejected(client):
    _add_edge(client, "b", "a")
    _add_edge(client, "c", "b")

    response = _add_edge(client, "a", "c")

    assert response.status_code == 409
    assert "cycle" in response.json()["message"].lower()
    edges = client.get(f"{API}/prerequisites").json()["data"]
    assert len(edges) == 2


def test_graphs_are_separate_per_kind(client):
    """hack 图和 level 图互不影响成环检测"""
    _add_edge(client, "b", "a", kind="hack")
    assert _add_edge(client, "a", "b", kind="level").status_code == 201


def test_hack_unlocks(client, db):
    _add_edge(client, "ice-bath", "breathing")
    _add_edge(client, "ice-bath", "cold-shower")
    progress.add_completions(db, user_id="user-1", content_id="breathing")

    response = client.get(
        f"{API}/prerequisites/users/user-1/unlocks",
        params={"content_ids": ["ice-bath", "breathing"]}
    )

    statuses = {s["content_id"]: s for s in response.json()["data"]}
    assert statuses["ice-bath"]["is_locked"] is True
    assert statuses["ice-bath"]["missing_prerequisite_ids"] == ["cold-shower"]
    assert statuses["breathing"]["is_locked"] is False

    progress.add_completions(db, user_id="user-1", content_id="cold-shower")
    response = client.get(f"{API}/prerequisites/users/user-1/unlocks", params={"content_ids": ["ice-bath"]})
    assert response.json()["data"][0]["is_locked"] is False


def test_level_unlocks_and_tree(client, db):
    level.create(db, obj_in=LevelCreate(id="foundation", name="Foundation", slug="foundation", position=0))
    level.create(db, obj_in=LevelCreate(id="direction", name="Direction", slug="direction", position=1))
    hack.create(db, obj_in=HackCreate(id="breathing", name="Breathing", slug="breathing", level_id="foundation"))
    hack.create(db, obj_in=HackCreate(
        id="sunlight", name="Sunlight", slug="sunlight", level_id="foundation", is_required=False
    ))
    hack.create(db, obj_in=HackCreate(id="journaling", name="Journaling", slug="journaling", level_id="direction"))
    _add_edge(client, "direction", "foundation", kind="level")

    levels = client.get(f"{API}/prerequisites/users/user-1/unlocks", params={"kind": "level"}).json()["data"]
    assert [(s["content_id"], s["is_locked"]) for s in levels] == [("foundation", False), ("direction", True)]

    hacks = {
        s["content_id"]: s
        for s in client.get(f"{API}/prerequisites/users/user-1/unlocks").json()["data"]
    }
    assert hacks["journaling"]["is_locked"] is True
    assert hacks["journaling"]["missing_prerequisite_ids"] == ["direction"]

    progress.add_completions(db, user_id="user-1", content_id="breathing")
    tree = client.get(f"{API}/prerequisites/users/user-1/level-tree").json()["data"]
    foundation, direction = tree
    assert foundation["is_completed"] is True
    assert foundation["total_required_hacks"] == 1
    assert foundation["progress_percentage"] == 100
    assert foundation["children"] == ["direction"]
    assert direction["is_locked"] is False
    assert direction["progress_percentage"] == 0
