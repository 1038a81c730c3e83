#!/usr/bin/env python3
"""
Wrapper script to run the pgcluster-operator with Kopf.

Launches Kopf's CLI with the operator module preloaded, so that any standard
`kopf run` argument can be passed.

Usage:
    python run_operator.py [any kopf run arguments]

Examples:
    python run_operator.py --verbose --all-namespaces
    python run_operator.py -n my-namespace --log-format=json
"""

import sys

if __name__ == '__main__':
    import kopf.cli

    # Registers the startup, cleanup and resource handlers
    import pgcluster.app  # noqa: F401

    # Behave as if called as: kopf run <args>
    sys.argv.insert(1, 'run')

    sys.exit(kopf.cli.main(prog_name="kopf"))
