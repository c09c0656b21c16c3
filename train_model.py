"""
Train the food-spoilage model from a directory of labelled photos.
The served model is only replaced once the run succeeds.

Run with: python train_model.py <dataset-path> [--epochs N] [--seed N]
"""
import argparse
import os
import sys

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "replate.settings")
os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "1")

import django; django.setup()

from classifier.errors import InsufficientDataError, TrainingError
from training.config import TrainingConfig
from training.runner import run_training

LAYOUT_HELP = """\
Dataset structure:
  dataset/
    ├── safe/          # Fresh food images
    │   ├── apple.jpg
    │   └── ...
    └── spoiled/       # Spoiled food images
        ├── moldy_bread.jpg
        └── ...

Legacy structure:
  dataset/
    └── Train/
        ├── freshapples/    # anything not starting with "rotten" → safe
        └── rottenapples/   # "rotten*" → spoiled

Supported formats: JPG, JPEG, PNG
Minimum samples: 10 after balancing (5 safe + 5 spoiled)"""


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Train the Replate food-spoilage classifier.",
        epilog=LAYOUT_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("dataset", help="Path to the training corpus")
    parser.add_argument("--epochs", type=int, default=TrainingConfig.epochs)
    parser.add_argument("--batch-size", type=int, default=TrainingConfig.batch_size)
    parser.add_argument("--seed", type=int, default=None, help="Shuffle seed")
    args = parser.parse_args(argv)

    if not os.path.isdir(args.dataset):
        print(f"Dataset path does not exist: {args.dataset}\n")
        print(LAYOUT_HELP)
        return 1

    config = TrainingConfig(
        epochs=args.epochs,
        batch_size=args.batch_size,
        shuffle_seed=args.seed,
    )

    print("=" * 60)
    print("STARTING TRAINING RUN")
    print("=" * 60)
    print(f"  Dataset    : {args.dataset}")
    print(f"  Epochs     : {config.epochs}")
    print(f"  Batch size : {config.batch_size}")
    print("=" * 60)
    print()

    try:
        report = run_training(args.dataset, config)
    except InsufficientDataError as exc:
        print(f"Not enough training data: {exc}\n")
        print(LAYOUT_HELP)
        return 1
    except TrainingError as exc:
        print(f"Training failed: {exc}")
        return 1

    print()
    print("=" * 60)
    print(f"RUN COMPLETE: {report.run_name}")
    print(f"  Samples    : {report.num_samples} ({report.num_safe} safe, {report.num_spoiled} spoiled)")
    print(f"  Accuracy   : {report.final_accuracy}")
    print(f"  Holdout    : {report.metrics.get('policy_accuracy')}")
    print(f"  Model saved: {report.artifact_path}")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
