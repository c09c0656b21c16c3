"""
conftest.py — pytest setup for the Django settings used by the tests.

Must run before pytest-django configures Django: model artefacts and
datasets go to throwaway directories, never into the source tree.
"""

import os
import sys
import tempfile

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "replate.settings")
os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")
os.environ["REPLATE_MODELS_ROOT"] = tempfile.mkdtemp(prefix="replate-models-")
os.environ["REPLATE_DATASETS_ROOT"] = tempfile.mkdtemp(prefix="replate-datasets-")
os.environ["REPLATE_WARM_ON_STARTUP"] = "0"

root_dir = os.path.dirname(os.path.abspath(__file__))
if root_dir not in sys.path:
    sys.path.insert(0, root_dir)
