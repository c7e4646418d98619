"""Shared fixtures for the iacgate test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from fakes import FakeCloudFormation, FakeRunner, FakeSession, terraform_plan_writer


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def cfn() -> FakeCloudFormation:
    return FakeCloudFormation()


@pytest.fixture
def session(cfn: FakeCloudFormation) -> FakeSession:
    return FakeSession(cloudformation=cfn)


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    workdir = tmp_path / "stack"
    workdir.mkdir()
    (workdir / "template.yaml").write_text(
        "AWSTemplateFormatVersion: '2010-09-09'\nResources:\n  Bucket:\n    Type: AWS::S3::Bucket\n",
        encoding="utf-8",
    )
    return workdir


@pytest.fixture
def terraform_dir(tmp_path: Path) -> Path:
    workdir = tmp_path / "infra"
    workdir.mkdir()
    (workdir / "main.tf").write_text('resource "null_resource" "demo" {}\n', encoding="utf-8")
    return workdir


@pytest.fixture
def terraform_runner() -> FakeRunner:
    return FakeRunner(
        {
            ("terraform", "version"): (0, '{"terraform_version": "1.14.0"}', ""),
            ("terraform", "plan"): terraform_plan_writer(),
            ("terraform", "show"): (0, "  # null_resource.demo will be created\n", ""),
            ("terraform", "apply"): (0, "null_resource.demo: Creation complete after 0s [id=1]\n", ""),
        }
    )
