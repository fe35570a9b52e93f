"""
Verify that Numba JIT is active for the embedding/pointer scatter kernels.
Run: python scripts/verify_numba_jit.py
     SEQ2SEQ_VERIFY_JIT=1 python scripts/benchmark_train.py --scenario toy --steps 1
"""

import os
import sys

_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
for p in (_ROOT, os.getcwd()):
    if p not in sys.path:
        sys.path.insert(0, p)


def main():
    from seq2seq.shared import _scatter_columns_numba, _segment_sum_numba, verify_numba_jit

    ok, msg = verify_numba_jit()
    print("JIT verification:", msg)
    if ok:
        print("  _segment_sum_numba signatures:", len(getattr(_segment_sum_numba, "signatures", [])))
        print("  _scatter_columns_numba signatures:", len(getattr(_scatter_columns_numba, "signatures", [])))
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
