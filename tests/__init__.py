# Path: tests/__init__.py
import sys
import os
__current_dir     = os.path.dirname(__file__)
__parent_dir      = os.path.abspath(os.path.join(__current_dir, ".."))
if __parent_dir not in sys.path:
    sys.path.append(__parent_dir)
