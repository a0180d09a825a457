import pytest

from dispatch.candidate_filter import Candidate, build_base_candidates
from dispatch.scoring import experience_score, rank_candidates, score_breakdown, score_driver
from drivers.models import Driver
from drivers.policy import ScoringPolicy, default_scoring_policy
from orders.models import OrderStatus

from conftest import DELIVERY_POINT, point_km_north, seed_driver, seed_order


@pytest.fixture
def policy():
    return default_scoring_policy()


def make_driver(driver_id, km, trips):
    lat, lon = point_km_north(DELIVERY_POINT, km)
    return Driver.new(driver_id, f"user-{driver_id}", lat, lon, total_trips=trips)


def test_busy_veteran_loses_to_idle_driver_further_away(policy):
    """
    A: 0.5 km away, 50 counted orders, 500 trips
    B: 2 km away, no orders, 100 trips
    Workload dominates: B must win.
    """
    driver_a = make_driver("A", 0.5, 500)
    driver_b = make_driver("B", 2.0, 100)

    score_a = score_driver(driver_a, DELIVERY_POINT, 50, policy)
    score_b = score_driver(driver_b, DELIVERY_POINT, 0, policy)

    # 0.5*-0.4 + 1250*-0.2 + 100*0.15
    assert score_a == pytest.approx(-235.2, abs=0.01)
    # 2*-0.4 + 0 + 100*0.15
    assert score_b == pytest.approx(14.2, abs=0.01)

    ranking = rank_candidates([Candidate(driver_a, 50), Candidate(driver_b, 0)], DELIVERY_POINT, policy)
    assert [s.driver_id for s in ranking] == ["B", "A"]


def test_experience_is_capped(policy):
    assert experience_score(0, policy) == 0
    assert experience_score(50, policy) == pytest.approx(50)
    assert experience_score(100, policy) == pytest.approx(100)
    assert experience_score(5000, policy) == pytest.approx(100)


def test_breakdown_reports_each_term(policy):
    breakdown = score_breakdown(make_driver("C", 1.0, 20), DELIVERY_POINT, 2, policy)

    assert breakdown.distance_km == pytest.approx(1.0, abs=1e-6)
    assert breakdown.workload_score == 50
    assert breakdown.experience_score == pytest.approx(20)
    assert breakdown.score == pytest.approx(1.0 * -0.4 + 50 * -0.2 + 20 * 0.15, abs=1e-6)


def test_driver_without_location_cannot_be_scored(policy):
    driver = Driver.new("ghost", "user-ghost")
    with pytest.raises(ValueError):
        score_driver(driver, DELIVERY_POINT, 0, policy)


def test_equal_scores_keep_input_order(policy):
    # same point, same trips: exact tie
    first = make_driver("first", 1.0, 10)
    second = make_driver("second", 1.0, 10)

    ranking = rank_candidates([Candidate(first, 0), Candidate(second, 0)], DELIVERY_POINT, policy)

    assert [s.driver_id for s in ranking] == ["first", "second"]


def test_closer_driver_wins_when_everything_else_is_equal(policy):
    near = make_driver("near", 0.3, 10)
    far = make_driver("far", 4.0, 10)

    ranking = rank_candidates([Candidate(far, 0), Candidate(near, 0)], DELIVERY_POINT, policy)

    assert ranking[0].driver_id == "near"


def test_candidates_count_workload_including_delivered(repository, policy):
    seed_driver(repository, "d1", point_km_north(DELIVERY_POINT, 1))
    seed_order(repository, "c1", status=OrderStatus.ACCEPTED, driver_id="d1")
    seed_order(repository, "c2", status=OrderStatus.DELIVERED, driver_id="d1")
    seed_order(repository, "c3", status=OrderStatus.CANCELLED)

    [candidate] = build_base_candidates(repository, policy)

    assert candidate.driver.id == "d1"
    assert candidate.active_order_count == 2


def test_workload_statuses_are_configurable(repository):
    policy = ScoringPolicy(workload_statuses=frozenset({OrderStatus.ACCEPTED, OrderStatus.IN_TRANSIT}))
    seed_driver(repository, "d1", point_km_north(DELIVERY_POINT, 1))
    seed_order(repository, "c1", status=OrderStatus.DELIVERED, driver_id="d1")

    [candidate] = build_base_candidates(repository, policy)

    assert candidate.active_order_count == 0


def test_candidate_filter_applies_eligibility_rules(repository, policy):
    seed_driver(repository, "ok", point_km_north(DELIVERY_POINT, 1))
    seed_driver(repository, "busy", point_km_north(DELIVERY_POINT, 1), is_available=False)
    seed_driver(repository, "inactive", point_km_north(DELIVERY_POINT, 1), is_active=False)
    seed_driver(repository, "blocked", point_km_north(DELIVERY_POINT, 1), is_blocked=True)
    seed_driver(repository, "no-gps")
    seed_driver(repository, "declined", point_km_north(DELIVERY_POINT, 1))

    candidates = build_base_candidates(repository, policy, exclude_driver_ids=["declined"])

    assert [c.driver.id for c in candidates] == ["ok"]


def test_policy_validation_rejects_positive_distance_weight():
    with pytest.raises(ValueError):
        ScoringPolicy(distance_weight=0.4).validate()
