"""Publish sample vulnerability findings to the findings topic.

One finding per severity and category, plus an off-scale severity and an
unconfigured category, so the routing thresholds can be checked end to end
against a running service.

Usage:
    GCP_PROJECT=my-project python scripts/publish_sample_findings.py --topic vuln-findings
"""

from __future__ import annotations

import argparse
import json
import os

from google.cloud import pubsub_v1

from vulnrouter.routing.severity import Severity
from vulnrouter.routing.store import FindingCategory


def sample_findings() -> list[dict[str, str]]:
    findings = [
        {
            "severity": severity.value.lower(),
            "type": category.value,
            "description": f"Sample {severity.value} {category.value} finding",
            "package_name": "openssl" if category == FindingCategory.OS else "requests",
            "resource_name": (
                f"//compute.googleapis.com/projects/sample/instances/{category.value.lower()}-1"
            ),
        }
        for category in FindingCategory
        for severity in Severity
    ]
    findings.append({"severity": "unknown", "type": "OS", "description": "Off-scale severity"})
    findings.append({"severity": "CRITICAL", "type": "NETWORK", "description": "Unrouted category"})
    return findings


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Publish sample findings to Pub/Sub.")
    parser.add_argument("--project", default=os.getenv("GCP_PROJECT", ""))
    parser.add_argument("--topic", required=True)
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    if not args.project:
        raise SystemExit("--project or GCP_PROJECT must be set")

    publisher = pubsub_v1.PublisherClient()
    topic_path = publisher.topic_path(args.project, args.topic)
    for finding in sample_findings():
        message_id = publisher.publish(topic_path, json.dumps(finding).encode("utf-8")).result()
        print(f"[PUBLISH] {finding['type']:<8} {finding['severity']:<9} -> {message_id}")


if __name__ == "__main__":
    main()
