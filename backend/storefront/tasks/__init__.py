# tasks/__init__.py
from storefront.tasks.lock_sweeper import lock_sweep_loop, start_lock_sweeper, stop_lock_sweeper

__all__ = ["lock_sweep_loop", "start_lock_sweeper", "stop_lock_sweeper"]
