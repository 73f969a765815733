"""Tests for the image action engine"""

import os
from unittest.mock import MagicMock, call

import pytest

from imageward.core.actions import Action, ImageActionEngine
from imageward.core.auth import AuthStore
from imageward.core.errors import (
    APIFailure,
    ConfigurationError,
    ImageNotFoundError,
    RetriesExhausted,
    TransportFailure,
)
from imageward.core.spec import ImageSpec


@pytest.fixture
def actions(mock_engine, auth_store, no_sleep_policy):
    """Action engine over the mock engine"""
    return ImageActionEngine(mock_engine, auth_store, no_sleep_policy)


class TestActionParsing:
    """Test Action lookup"""

    def test_parse_names(self):
        """Test lookup by value with loose spelling"""
        assert Action.parse("pull") is Action.PULL
        assert Action.parse("Build-If-Missing") is Action.BUILD_IF_MISSING
        assert Action.parse(Action.SAVE) is Action.SAVE

    def test_unknown_action(self):
        """Test that an unknown action is a configuration error"""
        with pytest.raises(ConfigurationError, match="Unknown action"):
            Action.parse("tag")

    def test_dispatch_covers_every_action(self, actions):
        """Test that the dispatch table handles every action"""
        assert set(actions._dispatch) == set(Action)


class TestBuild:
    """Test build and build_if_missing"""

    def test_build_from_directory_then_tag(self, actions, mock_engine, build_context):
        """Test building app:v1 from a context directory"""
        spec = ImageSpec("app", tag="v1", source=build_context)

        result = actions.run("build", spec)

        assert result.changed is True
        assert result.identifier == "app:v1"
        mock_engine.build_from_directory.assert_called_once_with(build_context, {"nocache": False, "rm": True})
        mock_engine.build_from_directory.return_value.tag.assert_called_once_with("app", "v1", False)

    def test_build_from_tar(self, actions, mock_engine, temp_dir):
        """Test that a .tar source is streamed to the engine"""
        tar_path = os.path.join(temp_dir, "context.tar")
        with open(tar_path, "wb") as f:
            f.write(b"tar-bytes")
        spec = ImageSpec("app", tag="v1", source=tar_path, nocache=True, force=True)

        actions.build(spec)

        stream, options = mock_engine.build_from_tar.call_args[0]
        assert stream.name == tar_path
        assert options == {"nocache": True, "rm": True}
        mock_engine.build_from_tar.return_value.tag.assert_called_once_with("app", "v1", True)

    def test_build_from_dockerfile_text(self, actions, mock_engine, temp_dir):
        """Test that other files are read and sent as Dockerfile text"""
        dockerfile = os.path.join(temp_dir, "Dockerfile.txt")
        with open(dockerfile, "w") as f:
            f.write("FROM busybox\nCMD [\"true\"]\n")
        spec = ImageSpec("app", source=dockerfile, rm=False)

        actions.build(spec)

        mock_engine.build_from_dockerfile_text.assert_called_once_with(
            "FROM busybox\nCMD [\"true\"]\n", {"nocache": False, "rm": False}
        )

    def test_build_missing_dockerfile_fails(self, actions, mock_engine, temp_dir):
        """Test that a nonexistent source fails when it is read"""
        spec = ImageSpec("app", source=os.path.join(temp_dir, "nope"))

        with pytest.raises(FileNotFoundError):
            actions.build(spec)

        mock_engine.build_from_dockerfile_text.assert_not_called()

    def test_build_requires_source(self, actions, mock_engine):
        """Test that build without source fails before any engine call"""
        with pytest.raises(ConfigurationError, match="source"):
            actions.run(Action.BUILD, ImageSpec("app"))

        assert mock_engine.method_calls == []

    def test_tag_step_is_retried(self, actions, mock_engine, build_context, no_sleep_policy):
        """Test that a transient tag failure is retried"""
        image = mock_engine.build_from_directory.return_value
        image.tag.side_effect = [TransportFailure("reset"), None]

        result = actions.build(ImageSpec("app", source=build_context))

        assert result.changed is True
        assert image.tag.call_count == 2
        assert mock_engine.build_from_directory.call_count == 1
        assert no_sleep_policy.waits == [1.0]

    def test_build_if_missing_skips_existing(self, actions, mock_engine, build_context):
        """Test that build_if_missing never builds an existing image"""
        mock_engine.exists.return_value = True

        result = actions.run("build_if_missing", ImageSpec("app", tag="v1", source=build_context))

        assert result.changed is False
        mock_engine.exists.assert_called_once_with("app:v1")
        mock_engine.build_from_directory.assert_not_called()
        mock_engine.build_from_tar.assert_not_called()
        mock_engine.build_from_dockerfile_text.assert_not_called()

    def test_build_if_missing_builds_absent(self, actions, mock_engine, build_context):
        """Test that build_if_missing builds an absent image"""
        result = actions.run("build_if_missing", ImageSpec("app", tag="v1", source=build_context))

        assert result.changed is True
        assert result.action is Action.BUILD_IF_MISSING
        mock_engine.build_from_directory.assert_called_once()


class TestPull:
    """Test pull and pull_if_missing"""

    def test_pull_without_prior_image(self, actions, mock_engine):
        """Test that pulling an absent image is a change"""
        result = actions.run("pull", ImageSpec("app", tag="v1"))

        assert result.changed is True
        mock_engine.create.assert_called_once_with("app:v1", {})
        mock_engine.get.assert_not_called()

    def test_pull_same_id_is_not_a_change(self, actions, mock_engine, make_image):
        """Test that an unchanged id reports no change"""
        mock_engine.exists.return_value = True
        mock_engine.get.return_value = make_image("sha256:aaaa")
        mock_engine.create.return_value = make_image("sha256:aaaa")

        result = actions.pull(ImageSpec("app", tag="v1"))

        assert result.changed is False

    def test_pull_long_prior_id_matches_short_new_id(self, actions, mock_engine, make_image):
        """Test that a short id from the pull matches the long prior id"""
        mock_engine.exists.return_value = True
        mock_engine.get.return_value = make_image("sha256:0123456789abcdef0123456789abcdef")
        mock_engine.create.return_value = make_image("sha256:0123456789ab")

        result = actions.pull(ImageSpec("app", tag="v1"))

        assert result.changed is False

    def test_pull_prefix_check_is_directional(self, actions, mock_engine, make_image):
        """Test that the prior id must start with the new id, not the reverse"""
        mock_engine.exists.return_value = True
        mock_engine.get.return_value = make_image("sha256:0123456789ab")
        mock_engine.create.return_value = make_image("sha256:0123456789abcdef0123456789abcdef")

        result = actions.pull(ImageSpec("app", tag="v1"))

        assert result.changed is True

    def test_pull_new_id_is_a_change(self, actions, mock_engine, make_image):
        """Test that a different id reports a change"""
        mock_engine.exists.return_value = True
        mock_engine.get.return_value = make_image("sha256:old")
        mock_engine.create.return_value = make_image("sha256:new")

        result = actions.pull(ImageSpec("app", tag="v1"))

        assert result.changed is True

    def test_prior_image_read_before_pull(self, actions, mock_engine):
        """Test that the resident image is fetched before the create call"""
        mock_engine.exists.return_value = True

        actions.pull(ImageSpec("app", tag="v1"))

        names = [c[0] for c in mock_engine.method_calls]
        assert names.index("get") < names.index("create")

    def test_pull_uses_registry_credentials(self, actions, mock_engine):
        """Test that credentials for the repo's registry are passed"""
        actions.pull(ImageSpec("registry.example.com:5000/app", tag="v1"))

        mock_engine.create.assert_called_once_with(
            "registry.example.com:5000/app:v1", {"username": "deploy", "password": "secret"}
        )

    def test_pull_retries_transport_failures(self, actions, mock_engine, make_image):
        """Test that a flaky pull is retried and still reports correctly"""
        mock_engine.create.side_effect = [TransportFailure("timeout"), make_image("sha256:new")]

        result = actions.pull(ImageSpec("app"))

        assert result.changed is True
        assert mock_engine.create.call_count == 2

    def test_pull_exhaustion_propagates(self, actions, mock_engine):
        """Test that exhausted retries fail the action"""
        mock_engine.create.side_effect = APIFailure("unavailable", status_code=503)

        with pytest.raises(RetriesExhausted):
            actions.pull(ImageSpec("app"))

        assert mock_engine.create.call_count == 3

    def test_pull_fatal_error_propagates(self, actions, mock_engine):
        """Test that a fatal pull error is not downgraded to no change"""
        mock_engine.create.side_effect = APIFailure("unauthorized", status_code=401)

        with pytest.raises(APIFailure):
            actions.pull(ImageSpec("app"))

        assert mock_engine.create.call_count == 1

    def test_pull_if_missing_skips_existing(self, actions, mock_engine):
        """Test that pull_if_missing does nothing for a present image"""
        mock_engine.exists.return_value = True

        result = actions.run("pull_if_missing", ImageSpec("app"))

        assert result.changed is False
        mock_engine.create.assert_not_called()

    def test_pull_if_missing_pulls_absent(self, actions, mock_engine):
        """Test that pull_if_missing pulls an absent image"""
        result = actions.run("pull_if_missing", ImageSpec("app"))

        assert result.changed is True
        assert result.action is Action.PULL_IF_MISSING
        mock_engine.create.assert_called_once()


class TestPush:
    """Test push"""

    def test_push_with_credentials(self, actions, mock_engine):
        """Test that the local image is pushed with resolved credentials"""
        result = actions.run("push", ImageSpec("registry.example.com:5000/app", tag="v1"))

        assert result.changed is True
        mock_engine.get.assert_called_once_with("registry.example.com:5000/app:v1")
        mock_engine.get.return_value.push.assert_called_once_with(
            {"username": "deploy", "password": "secret"}, "registry.example.com:5000/app:v1"
        )

    def test_push_missing_image_is_fatal(self, actions, mock_engine):
        """Test that pushing an absent image fails without retrying"""
        mock_engine.get.side_effect = ImageNotFoundError("app:v1")

        with pytest.raises(ImageNotFoundError):
            actions.push(ImageSpec("app", tag="v1"))

        assert mock_engine.get.call_count == 1


class TestImport:
    """Test import"""

    def test_import_absent_image(self, actions, mock_engine):
        """Test that an absent image is imported and tagged"""
        spec = ImageSpec("app", tag="v1", source="https://example.com/rootfs.tar")

        result = actions.run("import", spec)

        assert result.changed is True
        mock_engine.import_image.assert_called_once_with("https://example.com/rootfs.tar")
        mock_engine.import_image.return_value.tag.assert_called_once_with("app", "v1", False)

    def test_import_skips_existing(self, actions, mock_engine):
        """Test that import does nothing for a present image"""
        mock_engine.exists.return_value = True

        result = actions.run("import", ImageSpec("app", source="/tmp/rootfs.tar"))

        assert result.changed is False
        mock_engine.import_image.assert_not_called()


class TestRemove:
    """Test remove"""

    def test_remove_nonexistent_is_noop(self, actions, mock_engine):
        """Test that removing an absent image issues no removal"""
        result = actions.run("remove", ImageSpec("app", tag="v1"))

        assert result.changed is False
        mock_engine.get.assert_not_called()

    def test_remove_existing(self, actions, mock_engine):
        """Test that an existing image is removed honoring force/noprune"""
        mock_engine.exists.return_value = True

        result = actions.run("remove", ImageSpec("app", tag="v1", force=True, noprune=True))

        assert result.changed is True
        mock_engine.get.assert_called_once_with("app:v1")
        mock_engine.get.return_value.remove.assert_called_once_with(force=True, noprune=True)


class TestSaveLoad:
    """Test save and load"""

    def test_save_requires_destination(self, actions, mock_engine):
        """Test that save without destination fails before any engine call"""
        with pytest.raises(ConfigurationError, match="destination"):
            actions.run("save", ImageSpec("app"))

        mock_engine.save.assert_not_called()

    def test_save(self, actions, mock_engine):
        """Test that save writes the repo to the destination"""
        result = actions.run("save", ImageSpec("app", tag="v1", destination="/tmp/app.tar"))

        assert result.changed is True
        mock_engine.save.assert_called_once_with("app", "/tmp/app.tar")

    def test_load(self, actions, mock_engine):
        """Test that load reads the source archive"""
        result = actions.run("load", ImageSpec("app", source="/tmp/app.tar"))

        assert result.changed is True
        mock_engine.load.assert_called_once_with("/tmp/app.tar")

    def test_load_retries_then_succeeds(self, actions, mock_engine, make_image):
        """Test that load goes through the retry executor"""
        mock_engine.load.side_effect = [APIFailure("busy", status_code=500), [make_image()]]

        actions.load(ImageSpec("app", source="/tmp/app.tar"))

        assert mock_engine.load.call_args_list == [call("/tmp/app.tar"), call("/tmp/app.tar")]


class TestSharedAuthStore:
    """Test credential sharing across actions"""

    def test_fallback_entry_shared_between_actions(self, mock_engine, no_sleep_policy):
        """Test that later actions reuse the fallback entry from earlier ones"""
        store = AuthStore()
        actions = ImageActionEngine(mock_engine, store, no_sleep_policy)

        actions.pull(ImageSpec("nginx"))
        actions.pull(ImageSpec("unknown.example.com/app"))

        first_creds = mock_engine.create.call_args_list[0][0][1]
        second_creds = mock_engine.create.call_args_list[1][0][1]
        assert first_creds is second_creds
