"""Build module.

This module handles:
- Lunch target selection with fallbacks
- Running the compile step and capturing its log
- RBE variables
- Uploading artifacts to Buildkite
"""

# Import submodules directly, e.g. aosp_builder.builds.runner
