"""
Tests for the maintenance and reporting commands. Storage is real,
providers are fakes.
"""

from dataclasses import replace
from datetime import timedelta

import pytest

import main
from errors import ConfigurationError
from models import DemandCluster, Opportunity, utcnow

from fakes import FakeEmbedder, make_item


def _cluster(signal: str, niche: str = "Financial tools", days_ago: int = 0, count: int = 1) -> DemandCluster:
    return DemandCluster(
        niche=niche, demand_signal=signal, embedding=[1.0, 0.0],
        occurrence_count=count, last_seen=utcnow() - timedelta(days=days_ago),
    )


class TestReap:
    def test_uses_configured_window(self, tmp_storage, config, capsys):
        tmp_storage.create_cluster(_cluster("one-off", days_ago=90))
        tmp_storage.create_cluster(_cluster("sustained", days_ago=90, count=5))
        tmp_storage.create_cluster(_cluster("recent one-off", days_ago=10))

        main.cmd_reap(replace(config, cluster_stale_days=30), tmp_storage)

        assert "Reaped 1 stale clusters (unseen for 30 days" in capsys.readouterr().out
        assert {c.demand_signal for c in tmp_storage.top_clusters()} == {"sustained", "recent one-off"}


class TestStats:
    def test_top_and_trending(self, tmp_storage, config, capsys):
        tmp_storage.create_cluster(_cluster("track invoices", count=4))
        tmp_storage.create_cluster(_cluster("find dog walkers", niche="E-commerce", days_ago=20))

        main.cmd_stats(config, tmp_storage, days=7)

        out = capsys.readouterr().out
        assert "Demand clusters: 2" in out
        assert "TRENDING (7 DAYS)" in out
        trending = out.split("TRENDING (7 DAYS)")[1]
        assert "track invoices" in trending
        assert "find dog walkers" not in trending

    def test_one_niche(self, tmp_storage, config, capsys):
        tmp_storage.create_cluster(_cluster("track invoices"))
        tmp_storage.create_cluster(_cluster("find dog walkers", niche="E-commerce"))

        main.cmd_stats(config, tmp_storage, niche="E-commerce")

        out = capsys.readouterr().out
        assert "CLUSTERS IN E-COMMERCE" in out
        assert "find dog walkers" in out
        assert "track invoices" not in out


class TestIdeas:
    def test_ranks_grouped_opportunities(self, tmp_storage, config, capsys, monkeypatch):
        monkeypatch.setattr(main, "create_embedder", lambda cfg: FakeEmbedder())
        for n, channel in enumerate(["smallbusiness", "startups", "freelance"]):
            item_id = tmp_storage.insert_item(make_item(f"p{n}", channel=channel, title=f"Post {n}"))
            tmp_storage.create_opportunity(
                Opportunity(
                    title=f"Invoice reminder tool {n}",
                    description="Late invoices are chased by hand.",
                    proposed_solution="Automatic reminders",
                    scores={"speed": 7.0},
                    overall_score=7.0 - n,
                    viable=True,
                ),
                item_id,
                confidence=0.9,
            )

        groups, summary = main.cmd_ideas(config, tmp_storage, limit=5)

        assert len(groups) == 1
        assert groups[0].source_count == 3
        assert summary["cross_channel_groups"] == 1
        out = capsys.readouterr().out
        assert "TOP REQUESTED IDEAS" in out
        assert "3 sources, 3 opportunities" in out

    def test_needs_openai_key(self, tmp_storage, config):
        with pytest.raises(ConfigurationError):
            main.cmd_ideas(config, tmp_storage)
