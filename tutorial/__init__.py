"""
Tutorial Package.

The narrated clustering walkthrough. Run it with `python main.py`, or step
by step from the exported notebook.
"""
# Note: the steps are usually driven by main.py, but exposing the runner
# allows the notebook to call single steps.
from .walkthrough import PIPELINE_STEPS, STEP_INFO, new_context, run_step, run_walkthrough
