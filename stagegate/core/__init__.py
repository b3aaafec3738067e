"""Pipeline components, leaf-first: changeset -> snapshot -> partition -> worker -> assemble -> gatekeeper.

Every component takes the immutable GateConfig explicitly; nothing here reads
git config or the environment after the pipeline has started.
"""
