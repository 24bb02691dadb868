"""Smoke-test a running backend: scan a selfie, then ask for a routine and chat.

Usage: python scripts/smoke_scan.py path/to/selfie.jpg
"""

import base64
import os
import sys
import time

import requests

API = os.environ.get("BLOOM_API", "http://localhost:8000/api")


def run_scan(img_path):
    print("=== STEP 1: Skin scan ===")
    with open(img_path, "rb") as f:
        encoded = "data:image/jpeg;base64," + base64.b64encode(f.read()).decode("ascii")

    t0 = time.time()
    r = requests.post(
        f"{API}/haut-inference",
        json={"base64Image": encoded, "subjectName": "Smoke Test"},
        timeout=180,
    )
    elapsed = time.time() - t0
    data = r.json()

    if r.status_code != 200:
        print(f"  FAIL ({r.status_code}): {data.get('error')} | details={data.get('details')}")
        sys.exit(1)

    ids = data["ids"]
    print(f"  Subject {ids['subjectId']} | Batch {ids['batchId']} | {elapsed:.1f}s")
    for m in data["metrics"]:
        print(f"  {m['id']:<16} value={m['value']:<8} tag={m.get('tag') or '-'}")
    health = data.get("overallHealth") or {}
    print(f"  Overall: score={health.get('score', '?')} perceived_age={health.get('perceivedAge', '?')} "
          f"skin_type={health.get('skinType', '?')}")
    print()
    return data


def run_routine(scan):
    print("=== STEP 2: Routine ===")
    r = requests.post(
        f"{API}/recommendations",
        json={"skinMetrics": scan["metrics"], "overallHealth": scan.get("overallHealth")},
        timeout=120,
    ).json()
    print(f"  Summary: {r.get('summary')}")
    print(f"  Main concerns: {', '.join(r.get('mainConcerns', []))}")
    for section in r.get("sections", []):
        steps = ", ".join(s["title"] for s in section["steps"])
        print(f"  {section['title']}: {steps}")
    print()


def run_chat(scan):
    print("=== STEP 3: Chat ===")
    context = {m["id"]: m["value"] for m in scan["metrics"]}
    r = requests.post(
        f"{API}/chat",
        json={
            "messages": [{"role": "user", "content": "What should I focus on first?"}],
            "skinContext": context,
        },
        timeout=60,
    ).json()
    print(f"  ok={r.get('ok')} error={r.get('error')}")
    print(f"  {r.get('reply')}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)
    scan = run_scan(sys.argv[1])
    run_routine(scan)
    run_chat(scan)
