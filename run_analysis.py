#!/usr/bin/env python3
"""
Run the VTA dopamine-neuron differential expression analysis.

Usage:
    python run_analysis.py                                  # bundled settings
    python run_analysis.py VTA-DA-Vehicle_config.py         # settings from a config file
    python run_analysis.py results/DA_neurons_VEH_config_20250903_102714.py

Any configuration written by a previous run can be passed back in to
reproduce it.
"""

import sys

from rnaseq_toolkit.pipeline import main


if __name__ == "__main__":
    sys.exit(main())
