"""Tests for sample conversion and Trainer.fit."""

import gc
import weakref

import numpy as np
import pytest

from classifier.errors import DecodeError, TrainingError
from classifier.spoilage import Label
from training import train as train_module
from training.config import TrainingConfig
from training.data import TrainingDataset, TrainingSample
from training.train import Trainer, prepare_training_arrays, split_point


@pytest.fixture
def dataset(make_corpus):
    return TrainingDataset.load(make_corpus(6, 6), seed=0)


def _config(tmp_path, **overrides):
    values = dict(epochs=1, batch_size=4, runs_dir=tmp_path / "runs")
    values.update(overrides)
    return TrainingConfig(**values)


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def test_arrays_have_expected_shapes_and_labels(dataset):
    images, labels = prepare_training_arrays(dataset.samples)

    assert images.shape == (12, 224, 224, 3)
    assert images.dtype == labels.dtype == np.float32
    assert labels.shape == (12, 2)
    for sample, row in zip(dataset, labels):
        expected = [1.0, 0.0] if sample.label is Label.SAFE else [0.0, 1.0]
        assert row.tolist() == expected


def test_conversion_yields_every_n_samples(dataset, monkeypatch):
    sleeps = []
    monkeypatch.setattr(train_module.time, "sleep", lambda s: sleeps.append(s))

    prepare_training_arrays(dataset.samples, progress_every=5)

    assert sleeps == [0, 0]     # after samples 5 and 10 of 12


def test_conversion_aborts_on_undecodable_sample(dataset):
    bad = TrainingSample(b"garbage", Label.SAFE, "safe/bad.png", dataset.samples[0].observed_at)
    with pytest.raises(DecodeError):
        prepare_training_arrays(list(dataset.samples) + [bad])


@pytest.mark.parametrize("n, split, expected", [(12, 0.2, 9), (10, 0.2, 8), (1000, 0.2, 800), (5, 0.0, 5)])
def test_split_point(n, split, expected):
    assert split_point(n, split) == expected


# ---------------------------------------------------------------------------
# Fitting
# ---------------------------------------------------------------------------


def test_fit_trains_in_place_and_reports(tmp_path, dataset, tiny_classifier):
    trainer = Trainer(_config(tmp_path))
    model_before = tiny_classifier.model

    report = trainer.fit(dataset, tiny_classifier, run_name="unit")

    assert tiny_classifier.model is model_before
    assert tiny_classifier.trained is True
    assert report.run_name == "unit"
    assert (report.num_samples, report.num_safe, report.num_spoiled) == (12, 6, 6)
    assert (report.num_train, report.num_validation) == (9, 3)
    assert len(report.history["loss"]) == 1
    assert report.final_accuracy is not None
    assert report.finished_at >= report.started_at

    images, labels = trainer.validation_data
    assert images.shape == (3, 224, 224, 3)
    assert labels.shape == (3, 2)


def test_fit_failure_restores_weights(tmp_path, dataset, tiny_classifier):
    model = tiny_classifier.model
    before = [w.copy() for w in model.get_weights()]

    def exploding_fit(*args, **kwargs):
        model.set_weights([w + 1.0 for w in model.get_weights()])
        raise RuntimeError("out of memory")

    model.fit = exploding_fit
    trainer = Trainer(_config(tmp_path))

    with pytest.raises(TrainingError, match="out of memory"):
        trainer.fit(dataset, tiny_classifier)

    for expected, actual in zip(before, model.get_weights()):
        np.testing.assert_array_equal(expected, actual)
    assert tiny_classifier.trained is False
    assert not tiny_classifier.lock.write_held
    assert trainer.validation_data is None


def test_fit_holds_write_lock(tmp_path, dataset, tiny_classifier):
    model = tiny_classifier.model
    original_fit = model.fit
    held = []

    def recording_fit(*args, **kwargs):
        held.append(tiny_classifier.lock.write_held)
        return original_fit(*args, **kwargs)

    model.fit = recording_fit
    Trainer(_config(tmp_path)).fit(dataset, tiny_classifier)

    assert held == [True]
    assert not tiny_classifier.lock.write_held


def test_samples_are_released_before_model_fit(tmp_path, dataset, tiny_classifier):
    refs = [weakref.ref(sample) for sample in dataset.samples]
    model = tiny_classifier.model
    original_fit = model.fit
    alive = []

    def counting_fit(*args, **kwargs):
        gc.collect()
        alive.append(sum(1 for ref in refs if ref() is not None))
        return original_fit(*args, **kwargs)

    model.fit = counting_fit
    Trainer(_config(tmp_path)).fit(dataset, tiny_classifier)

    assert alive == [0]
    assert len(dataset) == 0


def test_holdout_is_a_copy_of_the_arena(tmp_path, dataset, tiny_classifier):
    trainer = Trainer(_config(tmp_path))
    trainer.fit(dataset, tiny_classifier)

    images, labels = trainer.validation_data
    assert images.base is None
    assert labels.base is None


def test_undecodable_sample_is_a_training_error(tmp_path, dataset, tiny_classifier):
    bad = TrainingSample(b"\x00\x01", Label.SPOILED, "spoiled/bad.png", dataset.samples[0].observed_at)
    broken = TrainingDataset(list(dataset.samples) + [bad])
    before = [w.copy() for w in tiny_classifier.model.get_weights()]

    with pytest.raises(TrainingError):
        Trainer(_config(tmp_path)).fit(broken, tiny_classifier)

    for expected, actual in zip(before, tiny_classifier.model.get_weights()):
        np.testing.assert_array_equal(expected, actual)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def test_config_defaults(tmp_path):
    config = TrainingConfig(runs_dir=tmp_path)
    assert (config.epochs, config.batch_size, config.validation_split) == (10, 32, 0.2)
    assert (config.max_per_class, config.min_samples, config.progress_every) == (500, 10, 100)
    assert config.to_dict()["runs_dir"] == str(tmp_path)


@pytest.mark.parametrize(
    "overrides",
    [{"epochs": 0}, {"batch_size": 0}, {"validation_split": 1.0}, {"validation_split": -0.1}, {"progress_every": 0}],
)
def test_config_rejects_bad_values(overrides):
    with pytest.raises(ValueError):
        TrainingConfig(**overrides)
