"""
ChurnFlow

ADHD-friendly capture routing: dump a thought, let the LLM decide where it
goes, and never lose it on the way.

Philosophy:
- Trackers are plain Markdown documents with YAML front matter
- Every capture lands somewhere, even when the LLM or a tracker fails
- Uncertain routing goes to a human review queue

Usage:
    from churnflow.common import load_config
    from churnflow.common.schemas import CaptureInput, CaptureResult
    from churnflow.router import CaptureEngine
"""

__version__ = "0.1.0"
