"""
phaseguard test suite.

- Supervisor phase orchestration on a virtual clock
- Supervisor behaviour on a real asyncio loop
- Timers, clocks, reentry guard, event sources, configuration types
"""
