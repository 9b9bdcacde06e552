"""
PlanForge
AI module — content generation for plan sections.

Submodules:
    - gateway: LLM Gateway (provider routing, usage logging)
    - retry: RetryingGenerator (bounded retry with exponential backoff)
    - prompts: System and per-section prompt assembly (en / fr)
    - task_runner: Background full-plan generation jobs
"""
