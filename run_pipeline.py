# -*- coding: utf-8 -*-
"""
Run the health board mapping pipeline

Starts the modular pipeline with the command line arguments given to this
script and reports the total run time.
"""

import sys
import time
from datetime import datetime

from healthmaps.pipeline.main import main
from healthmaps.pipeline.utils import convert_time_format

if __name__ == "__main__":
    timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    print("===== HEALTH BOARD MAPPING PIPELINE =====")
    print(f"Started: {timestamp}")

    start_time = time.time()
    status = main(sys.argv[1:])

    print("\n===== FINISHED =====" if status == 0 else "\n===== FAILED =====")
    print(f"Total run time: {convert_time_format(time.time() - start_time)}")
    sys.exit(status)
