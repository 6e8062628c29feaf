"""Generation logic package.

Fixed document prose and the loaders that turn provider JSON files into the
pipeline's input models. Keeping them here lets `services/` hold only the
pipeline steps themselves.
"""

from .context_preparation import load_functional_dataset  # noqa: F401
from .context_preparation import load_requirement_doc  # noqa: F401
from .context_preparation import load_template_analysis  # noqa: F401
