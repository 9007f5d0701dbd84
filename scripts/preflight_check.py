#!/usr/bin/env python3
import sys
import os

VALID_SUBMIT_MODES = ("sync", "rq", "hybrid")

print("Running preflight check...")
try:
    # Set dummy env vars to avoid KeyErrors during config load if any
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

    import proctor.main
    print("Import proctor.main: OK")

    import proctor.queue.jobs
    print("Import proctor.queue.jobs: OK")

    from proctor.settings import settings

    problems = []
    if settings.FINAL_SUBMIT_MODE not in VALID_SUBMIT_MODES:
        problems.append(f"FINAL_SUBMIT_MODE={settings.FINAL_SUBMIT_MODE!r} (expected one of {VALID_SUBMIT_MODES})")
    if not settings.SUBMISSION_API_URL:
        problems.append("SUBMISSION_API_URL is empty; forced submissions cannot be delivered")
    if settings.STRIKE_LIMIT < 0:
        problems.append(f"STRIKE_LIMIT={settings.STRIKE_LIMIT} must be >= 0")
    if settings.COUNTDOWN_POLL_MS > 1000:
        problems.append(f"COUNTDOWN_POLL_MS={settings.COUNTDOWN_POLL_MS} is coarser than the displayed second")

    for p in problems:
        print(f"[WARN] {p}")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
