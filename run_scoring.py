#!/usr/bin/env python3
"""Standalone scoring script for scheduled jobs (GitHub Actions, cron)."""

import json
import os
import sys

TOP_LEADS = 10


def main():
    try:
        from orchestration.scoring_engine import LeadScoringEngine

        engine = LeadScoringEngine()
        results = engine.score_all(limit=1000)

        # Count statuses
        statuses = {"ready_to_buy": 0, "hot": 0, "warm": 0, "neutral": 0, "cold": 0}
        for r in results:
            status = r.get("status", "cold")
            statuses[status] = statuses.get(status, 0) + 1

        print(f"Total scored: {len(results)}")
        print(", ".join(f"{name}: {count}" for name, count in statuses.items()))

        # Top leads (score_all returns highest first)
        print(f"Top {min(TOP_LEADS, len(results))} leads:")
        for r in results[:TOP_LEADS]:
            print(f"  {r['score']:>5}  {r.get('status', 'cold'):<12} {r['contact_id']}")

        # Write results to file
        with open("scoring_results.json", "w") as f:
            json.dump({
                "total": len(results),
                **statuses,
                "top_leads": [
                    {"contact_id": r["contact_id"], "score": r["score"], "status": r.get("status")}
                    for r in results[:TOP_LEADS]
                ],
            }, f)

        # Write to GitHub output file
        github_output = os.environ.get("GITHUB_OUTPUT", "")
        if github_output:
            with open(github_output, "a") as f:
                f.write(f"ready_to_buy={statuses['ready_to_buy']}\n")
                f.write(f"total_scored={len(results)}\n")

        return 0

    except Exception as e:
        print(f"Error: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
