"""Tests for ModelStore: fallback loading, caching and atomic saves."""

import logging
import threading

import numpy as np
import pytest
import tensorflow as tf

from classifier import model_loader
from classifier.errors import ArtifactError
from classifier.model_loader import MODEL_ARTIFACT_PATH, ModelStore
from classifier.spoilage import SpoilageClassifier
from tests.conftest import build_tiny_model


@pytest.fixture
def artifact(tmp_path):
    return tmp_path / "food-spoilage" / "v1" / "model.keras"


@pytest.fixture
def fast_untrained(monkeypatch):
    """Make the untrained fallback cheap; records how often it is built."""
    built = []

    def _untrained():
        clf = SpoilageClassifier(build_tiny_model(), trained=False)
        built.append(clf)
        return clf

    monkeypatch.setattr(SpoilageClassifier, "untrained", staticmethod(_untrained))
    return built


def test_default_artifact_path_is_versioned():
    assert MODEL_ARTIFACT_PATH.parts[-3:] == ("food-spoilage", "v1", "model.keras")


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------


def test_missing_artifact_falls_back_to_untrained(artifact, caplog, monkeypatch):
    # The "classifier" logger does not propagate under the project LOGGING config.
    monkeypatch.setattr(logging.getLogger("classifier"), "propagate", True)
    store = ModelStore(artifact)
    with caplog.at_level("WARNING", logger="classifier.model_loader"):
        clf = store.get()

    assert clf.trained is False
    assert tuple(clf.model.output_shape) == (None, 2)
    assert "untrained" in caplog.text


def test_read_artifact_raises_for_missing_file(artifact):
    with pytest.raises(ArtifactError):
        ModelStore(artifact)._read_artifact()


def test_corrupt_artifact_falls_back(artifact, fast_untrained):
    artifact.parent.mkdir(parents=True)
    artifact.write_bytes(b"PK\x03\x04 this is not a keras archive")

    with pytest.raises(ArtifactError):
        ModelStore(artifact)._read_artifact()

    clf = ModelStore(artifact).get()
    assert clf.trained is False
    assert clf is fast_untrained[-1]


def test_incompatible_topology_falls_back(artifact, fast_untrained):
    artifact.parent.mkdir(parents=True)
    foreign = tf.keras.Sequential(
        [tf.keras.layers.Input(shape=(32, 32, 3)), tf.keras.layers.Flatten(), tf.keras.layers.Dense(2)]
    )
    foreign.save(str(artifact))

    with pytest.raises(ArtifactError, match="Incompatible topology"):
        ModelStore(artifact)._read_artifact()

    assert ModelStore(artifact).get() is fast_untrained[-1]


# ---------------------------------------------------------------------------
# Save / load
# ---------------------------------------------------------------------------


def test_save_then_load_reproduces_predictions(artifact):
    classifier = SpoilageClassifier.untrained()
    rng = np.random.default_rng(3)
    tensor = rng.random((1, 224, 224, 3), dtype=np.float32)
    before = classifier.predict_proba(tensor)

    store = ModelStore(artifact)
    assert store.save(classifier) == artifact
    assert artifact.is_file()

    loaded = ModelStore(artifact).get()
    assert loaded.trained is True
    assert loaded.model.optimizer is not None
    np.testing.assert_allclose(loaded.predict_proba(tensor), before, atol=1e-6)


def test_same_shapes_different_layers_is_not_served(artifact, tiny_classifier, fast_untrained):
    # The tiny model maps (224, 224, 3) to 2 classes but is not the spoilage CNN.
    ModelStore(artifact).save(tiny_classifier)

    with pytest.raises(ArtifactError, match="Incompatible topology"):
        ModelStore(artifact)._read_artifact()

    clf = ModelStore(artifact).get()
    assert clf.trained is False
    assert clf is fast_untrained[-1]


def test_save_creates_parent_directories(tmp_path, tiny_classifier):
    target = tmp_path / "a" / "b" / "c" / "model.keras"
    ModelStore(target).save(tiny_classifier)
    assert target.is_file()


def test_save_leaves_no_temp_files(artifact, tiny_classifier):
    store = ModelStore(artifact)
    store.save(tiny_classifier)
    store.save(tiny_classifier)
    assert [p.name for p in artifact.parent.iterdir()] == ["model.keras"]


def test_failed_save_keeps_previous_artifact(artifact, tiny_classifier, monkeypatch):
    store = ModelStore(artifact)
    store.save(tiny_classifier)
    original = artifact.read_bytes()

    def broken_save(path, *args, **kwargs):
        with open(path, "wb") as fh:
            fh.write(b"partial")
        raise OSError("disk full")

    monkeypatch.setattr(tiny_classifier.model, "save", broken_save)
    with pytest.raises(OSError):
        store.save(tiny_classifier)

    assert artifact.read_bytes() == original
    assert [p.name for p in artifact.parent.iterdir()] == ["model.keras"]


def test_save_does_not_hold_the_write_lock(artifact, tiny_classifier):
    seen = []
    original_save = tiny_classifier.model.save

    def recording_save(path, *args, **kwargs):
        seen.append((tiny_classifier.lock.readers, tiny_classifier.lock.write_held))
        return original_save(path, *args, **kwargs)

    tiny_classifier.model.save = recording_save
    ModelStore(artifact).save(tiny_classifier)
    assert seen == [(1, False)]


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


def test_get_loads_once(artifact, monkeypatch):
    store = ModelStore(artifact)
    calls = []

    def fake_load():
        calls.append(1)
        return SpoilageClassifier(build_tiny_model())

    monkeypatch.setattr(store, "load", fake_load)

    first = store.get()
    assert store.get() is first
    assert len(calls) == 1

    store.reset()
    assert store.get() is not first
    assert len(calls) == 2


def test_concurrent_first_get_loads_once(artifact, monkeypatch):
    store = ModelStore(artifact)
    calls = []
    gate = threading.Event()

    def slow_load():
        calls.append(1)
        gate.wait(5)
        return SpoilageClassifier(build_tiny_model())

    monkeypatch.setattr(store, "load", slow_load)

    results = []
    threads = [threading.Thread(target=lambda: results.append(store.get())) for _ in range(8)]
    for t in threads:
        t.start()
    gate.set()
    for t in threads:
        t.join(timeout=10)

    assert len(calls) == 1
    assert len(results) == 8
    assert all(r is results[0] for r in results)


def test_default_store_is_shared():
    assert model_loader.get_store() is model_loader.get_store()
