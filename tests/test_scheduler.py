import pytest

from forkcrawl import ConfigurationError
from forkcrawl.crawler import CrawlerScheduler
from forkcrawl.utils.monitoring import MetricsCollector
from tests.conftest import ROOT, SiteCollector, flat_site, page_html, tree_site


TREE_PAGES = 40  # tree_site(breadth=3, depth=3)


def test_single_target_unbounded_visits_only_the_target(scheduler, collector):
    handler = scheduler.run([ROOT], concurrency=2)

    assert handler is collector
    assert scheduler.visited_count == 1
    assert scheduler.stats.forks == 0
    assert collector.visits == {ROOT: 1}
    assert collector.links == {ROOT + "p0/", ROOT + "p1/", ROOT + "p2/"}


def test_unbounded_run_does_not_expand_past_submitted_targets(scheduler, collector):
    targets = [ROOT] * 4
    scheduler.run(targets)

    assert scheduler.visited_count == 4
    assert collector.visits == {ROOT: 4}


@pytest.mark.parametrize("chunk_size", [1, 3, 10])
def test_unbounded_run_with_forking_visits_each_target_once(chunk_size):
    site = flat_site(25)
    targets = sorted(url for url in site if url != ROOT)
    collector = SiteCollector(site)
    scheduler = CrawlerScheduler(handler=collector, chunk_size=chunk_size)

    scheduler.run(targets, concurrency=4)

    assert scheduler.visited_count == 25
    assert collector.visits == {url: 1 for url in targets}
    assert scheduler.stats.forks == -(-25 // chunk_size) - 1


def test_first_round_forks_surplus_and_keeps_one_chunk():
    site = flat_site(20)
    targets = sorted(url for url in site if url != ROOT)
    collector = SiteCollector(site)
    scheduler = CrawlerScheduler(handler=collector, chunk_size=10, budget=25)

    scheduler.run(targets, concurrency=4)

    assert scheduler.stats.forks == 1
    assert scheduler.visited_count == 20
    assert collector.visits == {url: 1 for url in targets}


def test_discovered_links_are_split_between_root_and_one_child():
    collector = SiteCollector(flat_site(20))
    scheduler = CrawlerScheduler(handler=collector, chunk_size=10, budget=25)

    scheduler.run([ROOT], concurrency=4)

    # The root page plus its 20 leaves; the leaves are parsed in round 2.
    assert scheduler.stats.forks == 1
    assert scheduler.visited_count == 21
    assert len(collector.visits) == 21
    assert set(collector.visits.values()) == {1}


@pytest.mark.parametrize("chunk_size", [0, 2, 5])
def test_exhaustive_crawl_visits_every_page_once(site, chunk_size):
    collector = SiteCollector(site)
    scheduler = CrawlerScheduler(handler=collector, chunk_size=chunk_size, budget=TREE_PAGES * 2)

    scheduler.run([ROOT], concurrency=3)

    assert scheduler.visited_count == TREE_PAGES
    assert sorted(collector.visits) == sorted(site)
    assert set(collector.visits.values()) == {1}


@pytest.mark.parametrize("concurrency", [1, 2, 8])
@pytest.mark.parametrize("chunk_size", [0, 1, 4])
def test_budget_is_never_overrun(site, chunk_size, concurrency):
    budget = TREE_PAGES // 2
    collector = SiteCollector(site)
    scheduler = CrawlerScheduler(handler=collector, chunk_size=chunk_size, budget=budget)

    scheduler.run([ROOT], concurrency=concurrency)

    assert scheduler.visited_count == budget
    assert sum(collector.visits.values()) == budget


def test_sequential_run_without_chunk_size_never_forks(site):
    collector = SiteCollector(site)
    scheduler = CrawlerScheduler(handler=collector, budget=10)

    scheduler.run([ROOT], concurrency=4)

    assert scheduler.stats.forks == 0
    assert scheduler.stats.tasks == 1
    assert scheduler.visited_count == 10


def test_single_worker_pool_completes_a_forking_run(site):
    collector = SiteCollector(site)
    scheduler = CrawlerScheduler(handler=collector, chunk_size=1, budget=TREE_PAGES)

    scheduler.run([ROOT], concurrency=1)

    assert scheduler.visited_count == TREE_PAGES
    assert scheduler.stats.forks > 0


class AbortingCollector(SiteCollector):
    def __init__(self, site, stop_at, probe):
        self.stop_at = stop_at
        self.probe = probe
        super().__init__(site)

    def parse_page(self, page):
        if page.url == self.stop_at:
            self.probe["visited_at_abort"] = self.probe["scheduler"].visited_count
            return False
        return super().parse_page(page)


@pytest.mark.parametrize("chunk_size", [0, 2])
def test_abort_stops_all_tasks_and_the_budget_counter(site, chunk_size):
    probe = {}
    collector = AbortingCollector(site, stop_at=ROOT + "p1/", probe=probe)
    scheduler = CrawlerScheduler(handler=collector, chunk_size=chunk_size, budget=TREE_PAGES)
    probe["scheduler"] = scheduler

    scheduler.run([ROOT], concurrency=4)

    assert scheduler.stats.aborted
    assert scheduler.visited_count == probe["visited_at_abort"]
    assert scheduler.visited_count < TREE_PAGES
    assert ROOT + "p1/" not in collector.visits


def test_abort_on_first_page_ends_the_run():
    probe = {}
    collector = AbortingCollector(tree_site(3, 2), stop_at=ROOT, probe=probe)
    scheduler = CrawlerScheduler(handler=collector, chunk_size=1, budget=100)
    probe["scheduler"] = scheduler

    scheduler.run([ROOT])

    assert scheduler.visited_count == 1
    assert scheduler.stats.forks == 0
    assert collector.visits == {}


def test_fetch_failure_stops_only_the_current_round():
    site = flat_site(3)
    collector = SiteCollector(site)
    scheduler = CrawlerScheduler(handler=collector)
    targets = [ROOT + "leaf0", ROOT + "missing", ROOT + "leaf1"]

    scheduler.run(targets)

    assert scheduler.visited_count == 3
    assert collector.visits == {ROOT + "leaf0": 1}


def test_fetch_failure_in_one_task_does_not_affect_siblings():
    site = flat_site(4)
    collector = SiteCollector(site)
    scheduler = CrawlerScheduler(handler=collector, chunk_size=2)
    targets = [ROOT + "missing", ROOT + "leaf0", ROOT + "leaf1", ROOT + "leaf2"]

    scheduler.run(targets, concurrency=2)

    assert collector.visits == {ROOT + "leaf1": 1, ROOT + "leaf2": 1}


def test_malformed_targets_are_skipped():
    collector = SiteCollector(flat_site(2))
    scheduler = CrawlerScheduler(handler=collector)

    scheduler.run(["not a url", ROOT + "leaf0", "mailto:someone@x.com", ROOT + "leaf1"])

    assert collector.visits == {ROOT + "leaf0": 1, ROOT + "leaf1": 1}


class FailingMerge(SiteCollector):
    def merge(self, other):
        raise RuntimeError("accumulator corrupted")


def test_merge_failure_ends_branch_without_deadlock(site):
    collector = FailingMerge(site)
    scheduler = CrawlerScheduler(handler=collector, chunk_size=1, budget=TREE_PAGES)

    scheduler.run([ROOT], concurrency=2)

    assert scheduler.stats.failed_tasks > 0
    assert scheduler.state.outstanding.count == 0
    assert scheduler.visited_count <= TREE_PAGES


class FailingClone(SiteCollector):
    def clone(self):
        raise RuntimeError("cannot fork")


def test_clone_failure_ends_branch_without_deadlock():
    site = flat_site(6)
    collector = FailingClone(site)
    scheduler = CrawlerScheduler(handler=collector, chunk_size=2, budget=20)

    scheduler.run([ROOT], concurrency=2)

    assert scheduler.stats.failed_tasks == 1
    assert scheduler.stats.forks == 0
    assert collector.visits == {ROOT: 1}


def test_malformed_link_on_a_page_does_not_end_the_task():
    site = {
        ROOT: page_html(["a/", "http://[broken/", "b/"]),
        ROOT + "a/": page_html([]),
        ROOT + "b/": page_html([]),
    }
    collector = SiteCollector(site)
    scheduler = CrawlerScheduler(handler=collector, budget=10)

    scheduler.run([ROOT], concurrency=1)

    assert scheduler.stats.failed_tasks == 0
    assert collector.visits == {ROOT: 1, ROOT + "a/": 1, ROOT + "b/": 1}


def test_results_merge_into_root_handler(site):
    collector = SiteCollector(site)
    scheduler = CrawlerScheduler(handler=collector, chunk_size=2, budget=TREE_PAGES)

    scheduler.run([ROOT], concurrency=4)

    assert scheduler.stats.merges > 0
    # Every non-root page is linked from exactly one parent.
    assert collector.links == set(site) - {ROOT}


def test_visited_count_resets_between_runs(site):
    collector = SiteCollector(site)
    scheduler = CrawlerScheduler(handler=collector, budget=5)

    scheduler.run([ROOT])
    scheduler.run([ROOT])

    assert scheduler.visited_count == 5
    assert sum(collector.visits.values()) == 10


def test_empty_target_list_finishes_immediately(scheduler):
    scheduler.run([])
    assert scheduler.visited_count == 0


def test_run_without_handler_fails_fast():
    scheduler = CrawlerScheduler()
    with pytest.raises(ConfigurationError):
        scheduler.run([ROOT])
    assert scheduler.state is None


@pytest.mark.parametrize("budget", [0, -3, 2.5, "10", True])
def test_invalid_budget_is_rejected(budget):
    with pytest.raises(ConfigurationError):
        CrawlerScheduler(budget=budget)


def test_invalid_concurrency_is_rejected(scheduler):
    with pytest.raises(ConfigurationError):
        scheduler.run([ROOT], concurrency=-1)


def test_non_positive_chunk_size_disables_forking():
    scheduler = CrawlerScheduler()
    scheduler.chunk_size = 0
    assert scheduler.chunk_size == 0
    scheduler.chunk_size = -15
    assert scheduler.chunk_size == 0
    scheduler.chunk_size = 15
    assert scheduler.chunk_size == 15
    with pytest.raises(ConfigurationError):
        scheduler.chunk_size = "15"


def test_budget_can_be_cleared():
    scheduler = CrawlerScheduler(budget=10)
    scheduler.budget = None
    assert scheduler.budget is None


def test_metrics_are_recorded_for_a_run(site):
    metrics = MetricsCollector()
    collector = SiteCollector(site)
    scheduler = CrawlerScheduler(handler=collector, chunk_size=2, budget=10, metrics=metrics)

    scheduler.run([ROOT], concurrency=2)

    exported = metrics.export().decode()
    assert 'forkcrawl_runs_total{outcome="completed"} 1.0' in exported
    assert "forkcrawl_last_run_visited 10.0" in exported


def test_get_stats_reports_last_run(site):
    scheduler = CrawlerScheduler(handler=SiteCollector(site), budget=3)
    assert scheduler.get_stats() == {'is_running': False}

    scheduler.run([ROOT])

    stats = scheduler.get_stats()
    assert stats['visited_count'] == 3
    assert stats['outstanding_tasks'] == 0
    assert not stats['aborted']
