# =============================================================================
# coursekb/cli/__init__.py -- CLI Module Overview
# =============================================================================
#
# Command-line tools for operators and developers who need to run the
# pipeline outside of a host application:
#
#   ingest.py
#      analyze / ingest / search / collections / delete / health
#      subcommands over the document pipeline, vector service and
#      hybrid retriever.  Output is JSON on stdout.
#
# Architecture Notes:
#   - argparse for argument parsing (no Click/Typer).
#   - The component graph is built per invocation via coursekb.main and
#     closed before exit; nothing is shared between runs.
# =============================================================================

"""CLI tools for the coursekb pipeline.

- ``python -m coursekb.cli.ingest`` (or the ``coursekb`` console script)
"""
