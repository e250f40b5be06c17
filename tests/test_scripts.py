import json

import pytest

from app.models.claims import ClaimStatus
from app.scripts import install_cron, run_pipeline
from conftest import make_claim, make_item


def test_cron_block_schedules_pipeline_commands():
    block = install_cron.build_cron_block("/usr/bin/python3", "/srv/app", "03:30", "03:45", "04:05")
    lines = block.splitlines()
    assert lines[0] == install_cron.MARKER_BEGIN
    assert lines[2] == ("30 3 * * * cd /srv/app && /usr/bin/python3 -m app.scripts.run_pipeline match-all "
                        ">> logs/match_all.log 2>&1")
    assert lines[3].startswith("45 3 * * * ")
    assert lines[4].startswith("5 4 * * 0 ") and "run_pipeline archive" in lines[4]
    assert lines[5] == install_cron.MARKER_END


def test_cron_block_rejects_bad_time():
    with pytest.raises(ValueError):
        install_cron.build_cron_block("py", "/srv", "25:00", "03:45", "04:00")


def test_merge_crontab_replaces_existing_block():
    block = install_cron.build_cron_block("py", "/srv", "03:30", "03:45", "04:00")
    current = "MAILTO=ops\n" + block + "0 1 * * * echo other\n"
    merged = install_cron.merge_crontab(current, block)
    assert merged.count(install_cron.MARKER_BEGIN) == 1
    assert "echo other" in merged and merged.startswith("MAILTO=ops")
    assert install_cron.merge_crontab(merged, block) == merged


def test_run_pipeline_commands_on_memory_stores():
    stores = run_pipeline.build_stores("memory")
    items, claims, _ = stores
    items.save(make_item("found", "Keys", "car key with red tag", id="k1"))
    claims.save(make_claim("k1", "u1", [], id="c1"))

    summary = run_pipeline.run("match-all", stores)
    assert summary["matched_pairs"] == 0
    assert run_pipeline.run("batch", stores, limit=10)["processed"] == 1
    # a proof-less claim needs review
    assert run_pipeline.run("claims", stores) == {"processed": 1, "claims": 1, "suspicious": 0, "errors": 0}
    assert claims.get("c1").status == ClaimStatus.PENDING
    assert run_pipeline.run("archive", stores, days=0) == {"archived": 0}
    with pytest.raises(ValueError):
        run_pipeline.run("unknown", stores)


def test_run_pipeline_main_prints_json(capsys):
    assert run_pipeline.main(["match-all", "--backend", "memory"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["total_lost"] == 0
