"""크론 작업 자동 설치 스크립트 (벌크 매칭 + 클레임 처리 + 아카이브)

매일 정해진 시간에 app.scripts.run_pipeline 의 세 작업을 실행하도록 crontab 을
멱등(idempotent)하게 구성합니다. 마커 블록 사이 내용만 교체하므로 여러 번 실행해도
중복 라인이 쌓이지 않습니다.

기본 사용 예 (프로젝트 루트에서):
        python -m app.scripts.install_cron \
            --python /usr/bin/python3 \
            --match-time 03:30 \
            --claims-time 03:45 \
            --archive-time 04:30

로그는 프로젝트 하위 logs/ 에 append 됩니다. 서버 로컬 타임존 기준으로 동작합니다.
"""
from __future__ import annotations

import argparse
import os
import subprocess
import sys
from pathlib import Path

MARKER_BEGIN = "# >>> lost-found scheduled tasks >>>"
MARKER_END = "# <<< lost-found scheduled tasks <<<"


def _hm(value: str) -> tuple[int, int]:
    h, m = value.split(":")
    h, m = int(h), int(m)
    if not (0 <= h < 24 and 0 <= m < 60):
        raise ValueError(f"invalid HH:MM: {value}")
    return h, m


def build_cron_block(python: str, workspace: str, match_time: str, claims_time: str, archive_time: str) -> str:
    def line(at: str, command: str, log: str, weekday: str = "*") -> str:
        h, m = _hm(at)
        cmd = f"cd {workspace} && {python} -m app.scripts.run_pipeline {command} >> logs/{log} 2>&1"
        return f"{m} {h} * * {weekday} {cmd}"  # minute hour * * weekday

    lines = [
        MARKER_BEGIN,
        f"WORKSPACE={workspace}",
        line(match_time, "match-all", "match_all.log"),
        line(claims_time, "claims", "claims.log"),
        # 아카이브는 주 1회 (일요일)
        line(archive_time, "archive", "archive.log", weekday="0"),
        MARKER_END,
        "",
    ]
    return "\n".join(lines)


def merge_crontab(current: str, cron_block: str) -> str:
    """Replace the marked block in ``current`` (or append it)."""
    lines = []
    skip = False
    for raw in current.splitlines():
        if raw.strip() == MARKER_BEGIN:
            skip = True
            continue
        if raw.strip() == MARKER_END:
            skip = False
            continue
        if not skip:
            lines.append(raw)
    if lines and lines[-1].strip():
        lines.append("")
    lines.append(cron_block.rstrip())
    return "\n".join(lines) + "\n"


def install(cron_block: str):
    try:
        current = subprocess.check_output(["crontab", "-l"], text=True)
    except subprocess.CalledProcessError:
        current = ""
    proc = subprocess.run(["crontab", "-"], input=merge_crontab(current, cron_block), text=True)
    if proc.returncode != 0:
        print("Failed to install crontab", file=sys.stderr)
        sys.exit(proc.returncode)
    print("Cron tasks installed/updated.")


def parse_args(argv=None):
    p = argparse.ArgumentParser()
    p.add_argument("--python", default=sys.executable, help="Python interpreter path")
    p.add_argument("--workspace", default=str(Path(__file__).resolve().parents[2]), help="Workspace root path")
    p.add_argument("--match-time", default=os.getenv("MATCH_TIME", "03:30"), help="HH:MM")
    p.add_argument("--claims-time", default=os.getenv("CLAIMS_TIME", "03:45"), help="HH:MM")
    p.add_argument("--archive-time", default=os.getenv("ARCHIVE_TIME", "04:30"), help="HH:MM (일요일)")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    block = build_cron_block(args.python, args.workspace, args.match_time, args.claims_time, args.archive_time)
    install(block)


if __name__ == "__main__":
    main()
