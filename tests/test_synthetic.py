from geogrid.geo import generate_grid
from geogrid.matcher import match_business
from geogrid.provider import FETCH_ITEMS, FETCH_NOT_FOUND
from geogrid.synthetic import SyntheticProvider, keyword_seed

CENTER = (40.7128, -74.0060)


def make_provider(**kwargs):
    return SyntheticProvider(CENTER[0], CENTER[1], 5.0, "Harbor Dental", **kwargs)


def test_same_keyword_gives_same_ranks():
    points = generate_grid(CENTER[0], CENTER[1], 5.0, 5)
    a = make_provider()
    b = make_provider()
    assert [a.simulated_rank("dentist", p) for p in points] == [b.simulated_rank("dentist", p) for p in points]
    assert keyword_seed("Dentist ") == keyword_seed("dentist")


def test_explicit_seed_overrides_keyword():
    points = generate_grid(CENTER[0], CENTER[1], 5.0, 5)
    a = make_provider(seed=7)
    assert [a.simulated_rank("dentist", p) for p in points] == [a.simulated_rank("orthodontist", p) for p in points]


def test_ranks_get_worse_away_from_center():
    points = generate_grid(CENTER[0], CENTER[1], 5.0, 5)
    provider = make_provider(max_variation=40)
    center = provider.simulated_rank("dentist", points[12])
    corners = [provider.simulated_rank("dentist", points[i]) for i in (0, 4, 20, 24)]
    assert center <= 5
    assert min(corners) > center


def test_items_place_business_at_simulated_rank():
    point = generate_grid(CENTER[0], CENTER[1], 5.0, 3)[4]
    provider = make_provider()
    items = provider.build_items("dentist", point, depth=20)
    assert [it.position for it in items] == list(range(1, 21))
    assert match_business(items, "Harbor Dental") == provider.simulated_rank("dentist", point)


def test_rank_beyond_depth_is_unranked():
    point = generate_grid(CENTER[0], CENTER[1], 5.0, 3)[0]
    provider = make_provider(base_rank=30)
    items = provider.build_items("dentist", point, depth=20)
    assert match_business(items, "Harbor Dental") is None


def test_task_protocol():
    point = generate_grid(CENTER[0], CENTER[1], 5.0, 1)[0]
    provider = make_provider()
    task_id = provider.submit_task("dentist", point, "desktop", 10)
    assert provider.is_ready(task_id)
    outcome = provider.fetch_result(task_id)
    assert outcome.status == FETCH_ITEMS
    assert len(outcome.items) == 10
    assert outcome.search_volume is not None
    assert provider.fetch_result("synthetic-99999").status == FETCH_NOT_FOUND


def test_fetched_tasks_are_released():
    points = generate_grid(CENTER[0], CENTER[1], 5.0, 2)
    provider = make_provider()
    first = provider.submit_task("dentist", points[0], "desktop", 10)
    second = provider.submit_task("dentist", points[1], "desktop", 10)

    assert provider.fetch_result(first).status == FETCH_ITEMS
    assert not provider.is_ready(first)
    assert provider.fetch_result(first).status == FETCH_NOT_FOUND
    assert provider.is_ready(second)

    third = provider.submit_task("dentist", points[2], "desktop", 10)
    assert third not in (first, second)
    assert provider.pending_count() == 2
