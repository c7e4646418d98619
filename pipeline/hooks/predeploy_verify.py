#!/usr/bin/env python3
"""Pre-apply verification of a published plan artifact and its source commit."""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path

from core.artifacts import verify_directory
from core.constants import MANIFEST_FILE
from core.errors import InvalidConfig


def verify_plan(artifacts_dir: Path) -> dict:
    try:
        results = verify_directory(artifacts_dir)
    except InvalidConfig as exc:
        raise SystemExit(str(exc)) from exc
    if MANIFEST_FILE not in {path.name for path in artifacts_dir.iterdir()}:
        raise SystemExit(f'{MANIFEST_FILE} missing in artifacts')
    broken = {name: state for name, state in results.items() if state != 'ok'}
    if broken:
        details = ', '.join(f'{name} {state}' for name, state in sorted(broken.items()))
        raise SystemExit(f'Plan artifact verification failed: {details}')
    return json.loads((artifacts_dir / MANIFEST_FILE).read_text(encoding='utf-8'))


def verify_commit(manifest: dict, expected_commit: str | None) -> None:
    recorded = manifest.get('commit')
    current = expected_commit or os.getenv('GITHUB_SHA') or os.getenv('CODEBUILD_RESOLVED_SOURCE_VERSION')
    if recorded and current and recorded != current:
        raise SystemExit(f'Commit mismatch: plan was produced from {recorded}, deploying {current}')


def main() -> None:
    parser = argparse.ArgumentParser(description='Verify plan artifact integrity before apply')
    parser.add_argument('--artifacts-dir', required=True, type=Path)
    parser.add_argument('--commit', help='Commit being deployed (defaults to GITHUB_SHA)')
    args = parser.parse_args()

    manifest = verify_plan(args.artifacts_dir)
    verify_commit(manifest, args.commit)

    print(f"Pre-apply verification passed for run {manifest.get('artifact', {}).get('runId')}.")


if __name__ == '__main__':
    main()
