"""Allow ``python -m coursekb.cli`` execution."""

from coursekb.cli.ingest import main

main()
