"""Release Notes Composer.

Builds human-readable release notes from merged pull requests, grouped into
sections by label, and publishes them to the workflow run summary, a GitHub
release and a preview comment on open pull requests.
"""

__version__ = "0.1.0"
