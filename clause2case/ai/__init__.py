"""
Clause2Case
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, timeout, cancellation)
    - rag: paragraph chunking, embedders and cosine retrieval
    - prompt_registry: YAML prompt template loading
    - json_repair: bounded repair of malformed model JSON
    - test_case_generator: prompt → validated test case drafts
    - job_tracker: processing job state machine and background dispatch
"""
