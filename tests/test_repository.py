"""Tests for the Map Entity Repository and the rule evaluator."""

from datetime import datetime, timedelta, timezone

import pytest

from placement_kernel.entities.collection import EntityNotFound
from placement_kernel.entities.repository import MapEntityRepository
from placement_kernel.evaluation.evaluator import RuleEvaluator
from placement_kernel.models.entity import MapEntity
from placement_kernel.models.geometry import polygon_feature
from placement_kernel.models.rule import RuleResult
from placement_kernel.rules.catalog import has_large_energy_need
from placement_kernel.rules.rule import Rule


def _make_entity(
    entity_id: int,
    revision: int = 0,
    x0: float = 0,
    width: float = 10,
    **fields,
) -> MapEntity:
    return MapEntity(
        id=entity_id,
        revision=revision,
        geometry=polygon_feature([[x0, 0], [x0 + width, 0], [x0 + width, 20], [x0, 20]]),
        **fields,
    )


def _energy_only_repo() -> MapEntityRepository:
    return MapEntityRepository(rules_factory=lambda: [has_large_energy_need(8000)])


class TestEntityCollection:
    def test_upsert_and_lookup(self):
        repo = _energy_only_repo()
        repo.upsert(_make_entity(1))
        assert repo.get_by_id(1) is not None
        assert repo.get_by_id(2) is None
        assert 1 in repo
        assert len(repo) == 1

    def test_for_each_visits_all(self):
        repo = _energy_only_repo()
        repo.upsert(_make_entity(1))
        repo.upsert(_make_entity(2))
        seen = []
        repo.for_each(lambda e: seen.append(e.id))
        assert sorted(seen) == [1, 2]

    def test_remove(self):
        repo = _energy_only_repo()
        repo.upsert(_make_entity(1))
        assert repo.remove(1) is True
        assert repo.remove(1) is False
        with pytest.raises(EntityNotFound):
            repo.rules_for(1)

    def test_rules_survive_updates(self):
        repo = _energy_only_repo()
        repo.upsert(_make_entity(1))
        rules = repo.rules_for(1)
        repo.upsert(_make_entity(1, revision=1))
        assert repo.rules_for(1) is rules

    def test_is_latest(self):
        repo = _energy_only_repo()
        repo.upsert(_make_entity(1, revision=2))
        assert repo.is_latest(_make_entity(1, revision=2)) is True
        assert repo.is_latest(_make_entity(1, revision=1)) is False
        assert repo.is_latest(_make_entity(9)) is False


class TestBulkLoading:
    def test_load_replaces_and_clears_index(self):
        repo = _energy_only_repo()
        repo.upsert(_make_entity(1))
        repo.index.total_area(repo.get_by_id(1))
        assert repo.index.tracked_ids() == {1}

        repo.load([_make_entity(2), _make_entity(3, x0=100)])

        assert repo.get_by_id(1) is None
        assert len(repo) == 2
        assert repo.index.tracked_ids() == set()

    def test_reload_reports_changes(self):
        repo = _energy_only_repo()
        repo.load([_make_entity(1), _make_entity(2)])

        changes = repo.reload([_make_entity(1, revision=1), _make_entity(3)])

        assert changes.deleted == [2]
        assert changes.added == [3]
        assert changes.updated == [1]
        assert repo.get_by_id(1).revision == 1
        assert repo.get_by_id(2) is None

    def test_reload_ignores_older_revisions(self):
        repo = _energy_only_repo()
        repo.load([_make_entity(1, revision=3)])
        changes = repo.reload([_make_entity(1, revision=2)])
        assert changes.updated == []
        assert repo.get_by_id(1).revision == 3

    def test_constrain_filters_by_timestamp(self):
        repo = _energy_only_repo()
        repo.load([
            _make_entity(1, timestamp=datetime(2024, 6, 1)),
            _make_entity(2, timestamp=datetime(2024, 8, 1)),
            _make_entity(3),
        ])
        assert len(repo) == 3

        repo.constrain(datetime(2024, 7, 1), datetime(2024, 9, 1))
        assert repo.get_by_id(1) is None
        assert repo.get_by_id(2) is not None
        assert repo.get_by_id(3) is not None

        repo.constrain(None, None)
        assert len(repo) == 3

    def test_constrain_mixes_naive_and_aware_timestamps(self):
        repo = _energy_only_repo()
        repo.load([
            _make_entity(1, timestamp=datetime(2024, 6, 1)),
            _make_entity(2, timestamp=datetime(2024, 8, 1, 12, tzinfo=timezone(timedelta(hours=2)))),
        ])

        repo.constrain(
            datetime(2024, 7, 1, tzinfo=timezone.utc),
            datetime(2024, 9, 1),
        )

        assert repo.get_by_id(1) is None
        assert repo.get_by_id(2) is not None

    def test_constrain_compares_instants_across_offsets(self):
        repo = _energy_only_repo()
        # 23:30 at UTC-2 is already 01:30 UTC on the next day
        late = datetime(2024, 6, 30, 23, 30, tzinfo=timezone(timedelta(hours=-2)))
        repo.load([_make_entity(1, timestamp=late)])

        repo.constrain(datetime(2024, 7, 1), datetime(2024, 7, 2))

        assert repo.get_by_id(1) is not None


class TestEvaluation:
    def test_evaluate_threshold_rule(self):
        repo = _energy_only_repo()
        repo.upsert(_make_entity(1, power_need=8001))
        repo.upsert(_make_entity(2, power_need=8000))

        hot = repo.evaluate(1)
        calm = repo.evaluate(2)

        assert hot.severity == 1
        assert hot.triggered == ["has_large_energy_need"]
        assert calm.severity == 0
        assert calm.triggered == []

    def test_evaluate_unknown_entity(self):
        repo = _energy_only_repo()
        with pytest.raises(EntityNotFound):
            repo.evaluate(42)

    def test_default_rule_set_flags_cluster(self):
        repo = MapEntityRepository()
        repo.upsert(_make_entity(1, width=35))                # 700 m²
        repo.upsert(_make_entity(2, x0=38, width=30))         # 600 m², 3 m away

        report = repo.evaluate(1)

        assert report.severity == 3
        assert "is_cluster_too_big" in report.triggered
        cluster = next(r for r in report.rules if r.name == "is_cluster_too_big")
        assert cluster.short_message == "Cluster too big: 1300m²"

    def test_neighbor_state_stays_stale_until_evaluated(self):
        repo = MapEntityRepository()
        repo.upsert(_make_entity(1, width=35))
        repo.upsert(_make_entity(2, x0=38, width=30))
        repo.evaluate(1)
        repo.evaluate(2)

        repo.upsert(_make_entity(2, revision=1, x0=200, width=30))
        repo.evaluate(1)

        stale = next(r for r in repo.rules_for(2) if r.name == "is_cluster_too_big")
        assert stale.triggered is True
        assert "is_cluster_too_big" not in repo.evaluate(2).triggered


class TestRuleEvaluator:
    def test_max_severity(self):
        rules = [
            Rule(1, "a", "a", lambda e: RuleResult(triggered=True), name="a"),
            Rule(3, "b", "b", lambda e: RuleResult(triggered=False), name="b"),
            Rule(2, "c", "c", lambda e: RuleResult(triggered=True), name="c"),
        ]
        report = RuleEvaluator().evaluate(_make_entity(1), rules)
        assert report.severity == 2
        assert report.triggered == ["a", "c"]
        assert len(report.rules) == 3

    def test_empty_rule_set(self):
        report = RuleEvaluator().evaluate(_make_entity(1), [])
        assert report.severity == 0

    def test_failing_predicate_propagates(self):
        def broken(entity):
            raise ZeroDivisionError()

        with pytest.raises(ZeroDivisionError):
            RuleEvaluator().evaluate(_make_entity(1), [Rule(1, "s", "m", broken)])
