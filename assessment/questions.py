# assessment/questions.py

ASSESSMENT_DIMENSIONS = [
    {
        "id": "strategy",
        "title": "Strategy & Alignment",
        "description": "How well your data initiatives align with business strategy and have executive support.",
        "questions": [
            {"id": "strategy_1", "text": "Our organization has a clear, documented data strategy that aligns with business objectives."},
            {"id": "strategy_2", "text": "Senior leadership actively champions and invests in data initiatives."},
            {"id": "strategy_3", "text": "We regularly measure and communicate the business value of our data investments."},
        ],
    },
    {
        "id": "governance",
        "title": "Data Governance",
        "description": "The policies, processes, and organizational structures that ensure data is managed as a strategic asset.",
        "questions": [
            {"id": "governance_1", "text": "We have clearly defined data ownership and stewardship roles across the organization."},
            {"id": "governance_2", "text": "Our organization has established data policies and standards that are actively enforced."},
            {"id": "governance_3", "text": "We have formal processes for data access, sharing, and privacy protection."},
        ],
    },
    {
        "id": "architecture",
        "title": "Data Architecture & Integration",
        "description": "The technical foundation that enables data collection, storage, and integration across systems.",
        "questions": [
            {"id": "architecture_1", "text": "Our data architecture supports scalable, real-time data integration from multiple sources."},
            {"id": "architecture_2", "text": "We have a centralized data platform that provides a single source of truth."},
            {"id": "architecture_3", "text": "Our systems can easily adapt to new data sources and changing business requirements."},
        ],
    },
    {
        "id": "analytics",
        "title": "Analytics & Decision Enablement",
        "description": "The capabilities that turn data into actionable insights for decision-making.",
        "questions": [
            {"id": "analytics_1", "text": "Business users can easily access and analyze data without heavy IT involvement."},
            {"id": "analytics_2", "text": "We use advanced analytics (AI/ML, predictive modeling) to drive business decisions."},
            {"id": "analytics_3", "text": "Data insights are embedded into business processes and decision workflows."},
        ],
    },
    {
        "id": "team",
        "title": "Team & Skills",
        "description": "The human capabilities and organizational structure needed to execute data initiatives.",
        "questions": [
            {"id": "team_1", "text": "We have dedicated data professionals (analysts, scientists, engineers) with appropriate skills."},
            {"id": "team_2", "text": "Business users across the organization have strong data literacy and analytical skills."},
            {"id": "team_3", "text": "We have effective collaboration between data teams and business stakeholders."},
        ],
    },
    {
        "id": "quality",
        "title": "Data Quality & Operations",
        "description": "The processes and systems that ensure data is accurate, complete, and reliable.",
        "questions": [
            {"id": "quality_1", "text": "We have automated data quality monitoring and alerting systems in place."},
            {"id": "quality_2", "text": "Data quality issues are quickly identified, tracked, and resolved through defined processes."},
            {"id": "quality_3", "text": "We regularly measure and report on data quality metrics across key datasets."},
        ],
    },
    {
        "id": "metadata",
        "title": "Metadata & Documentation",
        "description": "The information about data that enables discovery, understanding, and proper usage.",
        "questions": [
            {"id": "metadata_1", "text": "Our data assets are well-documented with clear definitions and business context."},
            {"id": "metadata_2", "text": "We maintain comprehensive data lineage and impact analysis capabilities."},
            {"id": "metadata_3", "text": "Users can easily discover and understand available data through self-service tools."},
        ],
    },
    {
        "id": "security",
        "title": "Security & Risk Management",
        "description": "The controls and processes that protect data assets and ensure regulatory compliance.",
        "questions": [
            {"id": "security_1", "text": "We have comprehensive data security controls including encryption, access controls, and monitoring."},
            {"id": "security_2", "text": "Our data practices comply with relevant regulations (GDPR, CCPA, industry standards)."},
            {"id": "security_3", "text": "We have established data backup, recovery, and business continuity procedures."},
        ],
    },
]

LIKERT_SCALE = [
    {"value": 1, "label": "Strongly Disagree"},
    {"value": 2, "label": "Disagree"},
    {"value": 3, "label": "Neutral"},
    {"value": 4, "label": "Agree"},
    {"value": 5, "label": "Strongly Agree"},
]

DIMENSION_IDS = [d["id"] for d in ASSESSMENT_DIMENSIONS]


def dimension_titles(definitions=None) -> dict[str, str]:
    definitions = ASSESSMENT_DIMENSIONS if definitions is None else definitions
    return {d["id"]: d.get("title") or d["id"] for d in definitions}
