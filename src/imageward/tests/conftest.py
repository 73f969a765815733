"""Pytest configuration and shared fixtures"""

import os
import tempfile
from unittest.mock import MagicMock

import pytest
import yaml

from imageward.core.auth import AuthStore
from imageward.core.retry import RetryPolicy
from imageward.engine.base import BaseEngine, ImageHandle


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def make_image():
    """Factory for mock image handles with a given id"""

    def factory(image_id="sha256:abc123"):
        image = MagicMock(spec=ImageHandle)
        image.id = image_id
        return image

    return factory


@pytest.fixture
def mock_engine(make_image):
    """Mock engine where no image exists and every call succeeds"""
    engine = MagicMock(spec=BaseEngine)
    engine.exists.return_value = False
    engine.get.return_value = make_image("sha256:old")
    engine.create.return_value = make_image("sha256:new")
    engine.build_from_directory.return_value = make_image("sha256:built")
    engine.build_from_tar.return_value = make_image("sha256:built")
    engine.build_from_dockerfile_text.return_value = make_image("sha256:built")
    engine.import_image.return_value = make_image("sha256:imported")
    engine.load.return_value = [make_image("sha256:loaded")]
    return engine


@pytest.fixture
def auth_store():
    """Credential store with one private registry"""
    return AuthStore({
        "registry.example.com:5000": {"username": "deploy", "password": "secret"},
    })


@pytest.fixture
def no_sleep_policy():
    """Retry policy that records waits instead of sleeping"""
    waits = []
    policy = RetryPolicy(max_attempts=3, delay=1.0, sleep=waits.append)
    policy.waits = waits
    return policy


@pytest.fixture
def build_context(temp_dir):
    """Directory containing a Dockerfile"""
    context = os.path.join(temp_dir, "ctx")
    os.makedirs(context)
    with open(os.path.join(context, "Dockerfile"), "w") as f:
        f.write("FROM alpine:3.19\n")
    return context


@pytest.fixture
def sample_config_data():
    """Sample configuration data for testing"""
    return {
        "host": "unix:///var/run/docker.sock",
        "read_timeout": 300,
        "retries": {"max_attempts": 4, "delay": 0.5, "backoff": "constant"},
        "auth": {
            "registry.example.com:5000": {"username": "deploy", "password": "secret"},
        },
        "images": [
            {"repo": "nginx", "tag": "1.25", "action": "pull_if_missing"},
            {"repo": "registry.example.com:5000/app", "tag": "v1", "source": "/tmp/ctx", "action": "build"},
            {"repo": "registry.example.com:5000/app", "tag": "v1", "action": "push"},
        ],
    }


@pytest.fixture
def write_config(temp_dir):
    """Write a configuration dict to a YAML file and return its path"""

    def writer(data, name="images.yaml"):
        path = os.path.join(temp_dir, name)
        with open(path, "w") as f:
            yaml.dump(data, f)
        return path

    return writer
