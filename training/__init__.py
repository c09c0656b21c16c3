"""
Replate Spoilage Training Pipeline
==================================

Background training system that:

1. Discovers labelled images under a corpus directory (two layouts).
2. Balances the classes (first N per class, capped at 500) and shuffles.
3. Converts the corpus into one preallocated tensor batch.
4. Fits the live spoilage CNN in place, exclusive against inference.
5. Evaluates the validation holdout and atomically saves the model.

Package layout
--------------
config.py     – ``TrainingConfig`` dataclass, paths, hyperparameter defaults.
data.py       – Corpus discovery, label strategies, balancing.
train.py      – ``Trainer``: sample conversion and the Keras fit.
evaluate.py   – Holdout evaluation, confusion matrix, metrics persistence.
runner.py     – End-to-end orchestrator (data → train → evaluate → save).
tasks.py      – Background thread launcher and status helpers.
"""
