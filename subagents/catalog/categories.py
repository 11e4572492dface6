"""Static category taxonomy for the bundled catalog."""

CATEGORY_DESCRIPTIONS = {
    "generic": "General-purpose software development roles",
    "frontend": "Frontend development specialists for modern web frameworks",
    "backend": "Backend development experts for server-side frameworks",
    "cloud-devops": "Cloud infrastructure and DevOps automation specialists",
    "database": "Database design and optimization specialists",
    "ai-ml": "AI and machine learning development experts",
    "automation": "Workflow automation and integration experts",
    "test": "Testing and quality assurance specialists",
    "mobile": "Mobile application development experts",
}


def describe_category(name: str) -> str:
    return CATEGORY_DESCRIPTIONS.get(name, f"Agents in the '{name}' category")
