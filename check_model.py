"""
Spot-check the served food-spoilage model against labelled photos.

Loads the model the way the service does, classifies every image given
(files, or directories walked recursively) and compares the verdict with
the label implied by the image's folder (``safe/``, ``spoiled/``, or a
``Train/<class>/`` legacy folder).

Run with: python check_model.py <image-or-dir> [<image-or-dir> ...]
"""
import argparse
import os
import sys
from pathlib import Path

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "replate.settings")
os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "1")

import django; django.setup()

from classifier.analysis import describe
from classifier.errors import DecodeError, InferenceError
from classifier.model_loader import get_classifier
from classifier.services import classify_result
from classifier.spoilage import Label
from training.data import IMG_EXTS, label_by_class_folder, label_by_rotten_prefix


def expected_label(path: Path):
    """Label implied by the image's folder, or None if it has none."""
    label = label_by_class_folder(path.parent.name)
    if label is None and path.parent.parent.name == "Train":
        label = label_by_rotten_prefix(path.parent.name)
    return label


def collect_images(targets):
    images = []
    for target in map(Path, targets):
        if target.is_dir():
            images += sorted(p for p in target.rglob("*") if p.suffix.lower() in IMG_EXTS)
        elif target.is_file():
            images.append(target)
        else:
            print(f"  Skipping {target} (not found)")
    return images


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Check the Replate food-spoilage model against labelled photos.",
    )
    parser.add_argument("paths", nargs="+", help="Image files or directories")
    parser.add_argument("--no-summary", action="store_true", help="Skip the layer summary")
    args = parser.parse_args(argv)

    print("=" * 60)
    print("1. MODEL")
    print("=" * 60)
    classifier = get_classifier()
    print(f"  Trained    : {'yes' if classifier.trained else 'NO (untrained fallback)'}")
    if not args.no_summary:
        print(classifier.summary())

    images = collect_images(args.paths)

    print()
    print("=" * 60)
    print(f"2. PREDICTIONS ({len(images)} images)")
    print("=" * 60)

    checked = correct = 0
    for path in images:
        print(f"\n  {path.name}")
        try:
            result = classify_result(path.read_bytes())
        except (DecodeError, InferenceError) as exc:
            print(f"    ERROR      : {exc}")
            continue

        expected = expected_label(path)
        print(f"    Expected   : {expected.value if expected else '-'}")
        print(f"    Predicted  : {result.verdict.value}")
        print(f"    Confidence : {result.confidence * 100:.1f}%")
        if expected is not None:
            checked += 1
            hit = Label(result.verdict.value) is expected
            correct += hit
            print(f"    Result     : {'CORRECT' if hit else 'INCORRECT'}")
        print(f"    Message    : {describe(result).message}")

    print()
    print("=" * 60)
    print("3. SUMMARY")
    print("=" * 60)
    if not images:
        print("  No images found. Pass image files or folders such as")
        print("  training-data/safe/ and training-data/spoiled/.")
        print("=" * 60)
        return 1

    print(f"  Labelled   : {checked}")
    print(f"  Correct    : {correct}")
    print(f"  Incorrect  : {checked - correct}")
    if checked:
        accuracy = correct / checked * 100
        print(f"  Accuracy   : {accuracy:.1f}%")
        if accuracy < 50:
            print("\n  WARNING: low accuracy, the model needs retraining:")
            print("    python train_model.py <dataset-path>")
        elif accuracy < 80:
            print("\n  Accuracy is moderate. Consider retraining with more data.")
        else:
            print("\n  Model is performing well.")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
