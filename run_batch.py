# run_batch.py
# 배포된 서버의 /admin/batch-update 를 반복 호출해 주요 도시 타일을 미리 적재합니다.
# (Cron 대신 로컬에서 수동 실행할 때 사용)

import argparse
import os
import time
from datetime import datetime

import requests
from dotenv import load_dotenv

load_dotenv()
BASE_URL = os.getenv("CHIKAMAP_BASE_URL", "http://localhost:8000")
CRON_SECRET = os.getenv("CRON_SECRET")
ADMIN_KEY = os.getenv("REINFOLIB_API_KEY")


def _auth():
    if CRON_SECRET:
        return {"Authorization": f"Bearer {CRON_SECRET}"}, {}
    return {}, {"key": ADMIN_KEY}


def run_once(year=None, batch_size=None):
    headers, params = _auth()
    if year:
        params["year"] = year
    if batch_size:
        params["batchSize"] = batch_size
    r = requests.post(
        f"{BASE_URL}/admin/batch-update", headers=headers, params=params, timeout=120
    )
    r.raise_for_status()
    return r.json()


def show_stats():
    r = requests.get(f"{BASE_URL}/admin/stats", params={"key": ADMIN_KEY}, timeout=30)
    r.raise_for_status()
    data = r.json()
    print(f"지점 {data['masters']}개 / 연도별 가격 {data['yearly']}건")
    for row in data.get("by_prefecture", [])[:10]:
        print(f"  {row}")
    print(f"배치 상태: {data.get('batch')}")


def main():
    parser = argparse.ArgumentParser(description="지가 타일 배치 적재")
    parser.add_argument("--rounds", type=int, default=1, help="반복 호출 횟수")
    parser.add_argument("--year", type=int, default=None)
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--interval", type=float, default=2.0, help="호출 간격(초)")
    parser.add_argument("--stats", action="store_true", help="적재 현황만 출력")
    args = parser.parse_args()

    if args.stats:
        show_stats()
        return

    for i in range(1, args.rounds + 1):
        summary = run_once(args.year, args.batch_size)
        print(f"[{datetime.now()}] #{i} {summary}")
        if summary.get("processed", 0) == 0 and summary.get("errors", 0) == 0:
            print("처리할 작업이 없습니다.")
            break
        if i < args.rounds:
            time.sleep(args.interval)


if __name__ == "__main__":
    main()
