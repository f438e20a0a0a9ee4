#!/usr/bin/env python3
import sys
import os

print("Running preflight import check...")
try:
    # Mock collaborators unless the caller points at a backend
    os.environ.setdefault("USE_MOCKS", "true")

    import stepflow.main
    print("Import stepflow.main: OK")

    from stepflow.core.phases import ROLE_CONFIGS
    for role, config in ROLE_CONFIGS.items():
        print(f"Role {role.value}: {config.max_phase} phases")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
