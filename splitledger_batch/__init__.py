"""
splitledger_batch -- Recurring expense and budget actions.

Turns scheduled actions into ledger entries once per calendar day.  An
orchestrator discovers due actions, writes ``started`` history rows and
dispatches them in batches; a processor applies each action's ledger
statements, schedule advance and history result in one SAVEPOINT.

Architecture:
    splitledger_batch/ is a top-level package.  Nothing in
    splitledger_kernel/ imports from it.

Invariants:
    - At most one successful ledger effect per (action, calendar date).
    - Ledger writes, schedule advance and success history commit together.
    - A failing action or batch never stops its siblings.
    - Clock injection; no wall-clock reads in processing code.
"""
