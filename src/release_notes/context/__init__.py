"""Context-building modules for gathering release data.

These modules talk to GitHub (tags, commits, merged pull requests) and
normalize what comes back into the schemas the rest of the pipeline uses.
"""
