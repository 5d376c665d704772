"""Tests for RegistryPublisher."""

from __future__ import annotations

import logging
import os

import pytest

from shipline.errors import AuthError, PublishError, StepTimeoutError
from shipline.models import BuildArtifact, RegistryCredential
from shipline.publish.registry import RegistryPublisher
from shipline.runner import CommandResult

from conftest import COMMIT_SHA, REGISTRY_TOKEN, FakeDocker, FakeRunner


@pytest.fixture
def artifact(docker: FakeDocker) -> BuildArtifact:
    art = BuildArtifact(repository="dhaval/node-app", tag=COMMIT_SHA, image_id="sha256:abc")
    docker.images[art.reference] = art.image_id
    return art


@pytest.fixture
def credential() -> RegistryCredential:
    return RegistryCredential(username="dhaval", token=REGISTRY_TOKEN)


class TestRegistryPublisher:

    def test_pushes_both_tags_with_one_digest(
        self, runner: FakeRunner, docker: FakeDocker, artifact: BuildArtifact, credential: RegistryCredential,
    ):
        result = RegistryPublisher(runner=runner).publish(artifact, credential)

        assert result.references == [artifact.reference, artifact.alias_reference]
        assert docker.registry[artifact.reference] == docker.registry[artifact.alias_reference]
        assert result.digest == docker.registry[artifact.reference]
        assert docker.logins == 1

    def test_token_only_on_stdin(
        self, runner: FakeRunner, docker: FakeDocker, artifact: BuildArtifact, credential: RegistryCredential,
    ):
        RegistryPublisher(runner=runner).publish(artifact, credential)
        for call in runner.calls:
            assert REGISTRY_TOKEN not in " ".join(call["argv"])
        login = next(c for c in runner.calls if c["argv"][:2] == ["docker", "login"])
        assert login["input"] == REGISTRY_TOKEN
        assert "--password-stdin" in login["argv"]

    def test_private_docker_config_removed(
        self, runner: FakeRunner, docker: FakeDocker, artifact: BuildArtifact, credential: RegistryCredential,
    ):
        RegistryPublisher(runner=runner).publish(artifact, credential)
        configs = {c["env"]["DOCKER_CONFIG"] for c in runner.calls if c["env"]}
        assert len(configs) == 1
        assert not os.path.exists(configs.pop())
        assert docker.sessions == set()

    def test_registry_host_passed_to_login(
        self, runner: FakeRunner, docker: FakeDocker, artifact: BuildArtifact, credential: RegistryCredential,
    ):
        RegistryPublisher("ghcr.io", runner=runner).publish(artifact, credential)
        assert runner.commands("docker", "login")[0][-1] == "ghcr.io"
        assert runner.commands("docker", "logout")[0] == ["docker", "logout", "ghcr.io"]

    def test_rejected_credential(
        self, runner: FakeRunner, docker: FakeDocker, artifact: BuildArtifact,
    ):
        bad = RegistryCredential(username="dhaval", token="wrong-token")
        with pytest.raises(AuthError, match="login failed"):
            RegistryPublisher(runner=runner).publish(artifact, bad)
        assert runner.commands("docker", "push") == []
        assert docker.registry == {}

    def test_username_kept_out_of_errors_and_log(
        self, runner: FakeRunner, docker: FakeDocker, artifact: BuildArtifact, caplog,
    ):
        bot = RegistryCredential(username="regbot-user", token="wrong-token")
        with caplog.at_level(logging.DEBUG, logger="shipline"):
            with pytest.raises(AuthError) as exc_info:
                RegistryPublisher(runner=runner).publish(artifact, bot)
            docker.token = "wrong-token"
            RegistryPublisher(runner=runner).publish(artifact, bot)
        assert "regbot-user" not in str(exc_info.value)
        assert "regbot-user" not in caplog.text
        assert "regbot-user" not in repr(bot)
        assert runner.commands("docker", "login")[0][3] == "regbot-user"

    def test_push_failure_still_logs_out(
        self, runner: FakeRunner, docker: FakeDocker, artifact: BuildArtifact, credential: RegistryCredential,
    ):
        runner.on("docker", "push", returncode=1, stderr="denied: quota exceeded")
        with pytest.raises(PublishError, match="quota"):
            RegistryPublisher(runner=runner).publish(artifact, credential)
        assert len(runner.commands("docker", "logout")) == 1
        assert docker.sessions == set()

    def test_second_push_failure(
        self, runner: FakeRunner, docker: FakeDocker, artifact: BuildArtifact, credential: RegistryCredential,
    ):
        runner.on("docker", "push", artifact.alias_reference, returncode=1, stderr="denied")
        with pytest.raises(PublishError):
            RegistryPublisher(runner=runner).publish(artifact, credential)
        assert artifact.reference in docker.registry

    def test_digest_mismatch(
        self, runner: FakeRunner, docker: FakeDocker, artifact: BuildArtifact, credential: RegistryCredential,
    ):
        digests = iter(["sha256:" + "a" * 64, "sha256:" + "b" * 64])

        def push(argv, input, env):
            return CommandResult(argv=argv, stdout=f"x: digest: {next(digests)} size: 1\n")

        runner.on("docker", "push", handler=push)
        with pytest.raises(PublishError, match="different digests"):
            RegistryPublisher(runner=runner).publish(artifact, credential)

    def test_tag_failure(
        self, runner: FakeRunner, docker: FakeDocker, credential: RegistryCredential,
    ):
        missing = BuildArtifact(repository="dhaval/node-app", tag="deadbeef")
        with pytest.raises(PublishError, match="docker tag"):
            RegistryPublisher(runner=runner).publish(missing, credential)

    def test_logout_timeout_is_not_fatal(
        self, runner: FakeRunner, docker: FakeDocker, artifact: BuildArtifact, credential: RegistryCredential,
    ):
        runner.on("docker", "logout", raises=StepTimeoutError("docker logout", 1))
        result = RegistryPublisher(runner=runner).publish(artifact, credential)
        assert len(result.references) == 2
