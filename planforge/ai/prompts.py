"""
PlanForge
Section prompt assembly.

One fixed system prompt per language and one instruction template per
section per language. The user prompt is:

    <section template>

    <plan metadata>

    === QUESTIONNAIRE RESPONSES ===
    Question 1: ...
    Answer: ...

    <closing instruction naming the section>
    Section: <SectionName>

Usage:
    from planforge.ai.prompts import build_user_prompt, get_system_prompt
    system = get_system_prompt("en")
    user = build_user_prompt(plan, answers, "MarketAnalysis", "en")
"""

from planforge.core.exceptions import ValidationError

SUPPORTED_LANGUAGES = ("en", "fr")


SYSTEM_PROMPTS = {
    "en": (
        "You are an expert business plan consultant with 20 years of experience helping "
        "entrepreneurs and non-profit organizations create professional, comprehensive "
        "business plans. Your expertise includes:\n"
        "- Strategic planning and market analysis\n"
        "- Financial projections and funding strategies\n"
        "- Competitive positioning and value proposition development\n"
        "- Operational and organizational planning\n"
        "- Risk assessment and mitigation strategies\n\n"
        "Write in a professional, clear and compelling tone. Use concrete examples and "
        "actionable insights. Structure your content with proper headings and bullet "
        "points where appropriate."
    ),
    "fr": (
        "Vous êtes un consultant expert en plans d'affaires avec 20 ans d'expérience aidant "
        "les entrepreneurs et les organismes à but non lucratif à créer des plans d'affaires "
        "professionnels et complets. Votre expertise inclut :\n"
        "- La planification stratégique et l'analyse de marché\n"
        "- Les projections financières et les stratégies de financement\n"
        "- Le positionnement concurrentiel et le développement de propositions de valeur\n"
        "- La planification opérationnelle et organisationnelle\n"
        "- L'évaluation et l'atténuation des risques\n\n"
        "Rédigez dans un ton professionnel, clair et convaincant. Utilisez des exemples "
        "concrets et des perspectives actionnables. Structurez votre contenu avec des titres "
        "appropriés et des puces lorsque nécessaire."
    ),
}


SECTION_PROMPTS = {
    "en": {
        "ExecutiveSummary": (
            "Write a compelling executive summary that presents the company, its unique value "
            "proposition, target market, competitive advantages and key financial objectives."
        ),
        "ProblemStatement": (
            "Identify and describe the problem or unmet need that the business or organization "
            "aims to solve. Explain why this problem is important and urgent for the target market."
        ),
        "Solution": (
            "Present the products or services offered in detail: their features, their benefits, "
            "how they solve customer problems and what differentiates them from the competition."
        ),
        "MarketAnalysis": (
            "Analyze the target market: size, growth, trends and segments. Include industry data, "
            "opportunities and challenges."
        ),
        "CompetitiveAnalysis": (
            "Identify the main direct and indirect competitors and analyze their strengths and "
            "weaknesses. Explain the company's competitive positioning and distinctive advantages."
        ),
        "SwotAnalysis": (
            "Conduct a complete SWOT analysis: Strengths (internal assets), Weaknesses (internal "
            "limitations), Opportunities (positive external factors), Threats (external risks)."
        ),
        "BusinessModel": (
            "Explain the business model: how the company creates, delivers and captures value. "
            "Include revenue streams, cost structure, key resources and strategic partnerships."
        ),
        "MarketingStrategy": (
            "Describe the complete marketing strategy: positioning, communication channels, "
            "customer acquisition tactics, content strategy and marketing budget."
        ),
        "BrandingStrategy": (
            "Explain the branding strategy: visual identity, tone of communication, brand value "
            "proposition and how the brand will resonate with the target audience."
        ),
        "OperationsPlan": (
            "Describe daily operations: facilities, equipment, technologies, key processes, "
            "suppliers, supply chain and quality management."
        ),
        "ManagementTeam": (
            "Present the management team: skills, experience, roles and responsibilities. "
            "Highlight how the team is positioned to succeed."
        ),
        "FinancialProjections": (
            "Summarize the financial projections: expected revenues, main costs, profitability "
            "and cash flow needs. Explain the key assumptions behind these projections."
        ),
        "FundingRequirements": (
            "Detail the funding needs: required amount, use of funds, potential funding sources, "
            "financing structure and repayment plan or return on investment."
        ),
        "RiskAnalysis": (
            "Identify the main risks (market, operational, financial, regulatory) and present "
            "concrete mitigation strategies for each."
        ),
        "ExitStrategy": (
            "Explain potential exit options for investors: acquisition, IPO or buyout. Include an "
            "approximate timeline and valuation factors."
        ),
        "MissionStatement": (
            "Write a clear and inspiring mission statement that explains the organization's "
            "purpose, who it serves and the impact it wishes to create in the community."
        ),
        "SocialImpact": (
            "Describe the expected social impact: positive changes in the community, social "
            "success indicators and direct and indirect beneficiaries."
        ),
        "BeneficiaryProfile": (
            "Draw a detailed portrait of the beneficiaries: who they are, their specific needs, "
            "the challenges they face and how the organization will address these needs."
        ),
        "GrantStrategy": (
            "Explain the grant funding strategy: identified sources (government, private "
            "foundations), application process, timeline and anticipated success rate."
        ),
        "SustainabilityPlan": (
            "Describe how the organization will ensure its long-term financial and operational "
            "sustainability beyond initial funding, including diversified revenue sources."
        ),
    },
    "fr": {
        "ExecutiveSummary": (
            "Rédigez un résumé exécutif captivant qui présente l'entreprise, sa proposition de "
            "valeur unique, son marché cible, ses avantages concurrentiels et ses objectifs "
            "financiers principaux."
        ),
        "ProblemStatement": (
            "Identifiez et décrivez le problème ou le besoin non satisfait que l'entreprise ou "
            "l'organisation vise à résoudre. Expliquez pourquoi ce problème est important et "
            "urgent pour le marché cible."
        ),
        "Solution": (
            "Présentez en détail les produits ou services offerts : leurs caractéristiques, leurs "
            "avantages, comment ils résolvent les problèmes des clients et ce qui les différencie "
            "de la concurrence."
        ),
        "MarketAnalysis": (
            "Analysez le marché cible : taille, croissance, tendances et segments. Incluez des "
            "données sur l'industrie, les opportunités et les défis."
        ),
        "CompetitiveAnalysis": (
            "Identifiez les principaux concurrents directs et indirects et analysez leurs forces "
            "et faiblesses. Expliquez le positionnement concurrentiel de l'entreprise."
        ),
        "SwotAnalysis": (
            "Réalisez une analyse SWOT complète : Forces (atouts internes), Faiblesses (limites "
            "internes), Opportunités (facteurs externes positifs), Menaces (risques externes)."
        ),
        "BusinessModel": (
            "Expliquez le modèle d'affaires : comment l'entreprise crée, délivre et capture de la "
            "valeur. Incluez les flux de revenus, la structure de coûts, les ressources clés et "
            "les partenariats stratégiques."
        ),
        "MarketingStrategy": (
            "Décrivez la stratégie marketing complète : positionnement, canaux de communication, "
            "tactiques d'acquisition de clients, stratégie de contenu et budget marketing."
        ),
        "BrandingStrategy": (
            "Expliquez la stratégie de marque : identité visuelle, ton de communication, "
            "proposition de valeur de la marque et résonance auprès du public cible."
        ),
        "OperationsPlan": (
            "Décrivez les opérations quotidiennes : installations, équipements, technologies, "
            "processus clés, fournisseurs, chaîne d'approvisionnement et gestion de la qualité."
        ),
        "ManagementTeam": (
            "Présentez l'équipe de direction : compétences, expériences, rôles et "
            "responsabilités. Mettez en avant comment l'équipe est positionnée pour réussir."
        ),
        "FinancialProjections": (
            "Résumez les projections financières : revenus prévus, coûts principaux, rentabilité "
            "et besoins en trésorerie. Expliquez les hypothèses clés derrière ces projections."
        ),
        "FundingRequirements": (
            "Détaillez les besoins de financement : montant requis, utilisation des fonds, "
            "sources de financement potentielles et retour sur investissement."
        ),
        "RiskAnalysis": (
            "Identifiez les principaux risques (marché, opérationnels, financiers, "
            "réglementaires) et présentez des stratégies concrètes d'atténuation pour chacun."
        ),
        "ExitStrategy": (
            "Expliquez les options de sortie potentielles pour les investisseurs : acquisition, "
            "introduction en bourse ou rachat. Incluez un calendrier approximatif."
        ),
        "MissionStatement": (
            "Rédigez un énoncé de mission clair et inspirant qui explique la raison d'être de "
            "l'organisation, qui elle sert et l'impact qu'elle souhaite créer."
        ),
        "SocialImpact": (
            "Décrivez l'impact social attendu : changements positifs dans la communauté, "
            "indicateurs de succès social, bénéficiaires directs et indirects."
        ),
        "BeneficiaryProfile": (
            "Dressez un portrait détaillé des bénéficiaires : qui ils sont, leurs besoins "
            "spécifiques, les défis auxquels ils font face et la réponse de l'organisation."
        ),
        "GrantStrategy": (
            "Expliquez la stratégie de financement par subventions : sources identifiées, "
            "processus de demande, calendrier et taux de réussite anticipé."
        ),
        "SustainabilityPlan": (
            "Décrivez comment l'organisation assurera sa pérennité financière et opérationnelle "
            "à long terme, au-delà du financement initial."
        ),
    },
}

_METADATA_LABELS = {
    "en": ("Plan title", "Category", "Description"),
    "fr": ("Titre du plan", "Catégorie", "Description"),
}

_CLOSING = {
    "en": (
        "Based on the questionnaire responses above, write a comprehensive {section} section "
        "for this business plan. Make it specific to this business, using the details "
        "provided. Aim for 400-600 words."
    ),
    "fr": (
        "En vous basant sur les réponses au questionnaire ci-dessus, rédigez une section "
        "{section} complète pour ce plan d'affaires. Rendez-la spécifique à cette entreprise "
        "en utilisant les détails fournis. Visez 400 à 600 mots."
    ),
}


def validate_language(language: str | None) -> str:
    """Normalise and check a language code. Raises ValidationError when unsupported."""
    code = (language or "").strip().lower()
    if code not in SUPPORTED_LANGUAGES:
        raise ValidationError(
            f"Unsupported language: {language!r}",
            details={"language": language, "supported": list(SUPPORTED_LANGUAGES)},
        )
    return code


def get_system_prompt(language: str) -> str:
    return SYSTEM_PROMPTS[validate_language(language)]


def build_questionnaire_context(answers) -> str:
    """Render answers as numbered Question/Answer pairs in questionnaire order."""
    lines = ["=== QUESTIONNAIRE RESPONSES ===", ""]
    ordered = sorted(answers, key=lambda a: (a.sort_order, a.id or 0))
    for n, answer in enumerate(ordered, start=1):
        lines.append(f"Question {n}: {answer.question_text}")
        lines.append(f"Answer: {answer.answer_text or ''}")
        lines.append("")
    return "\n".join(lines)


def build_user_prompt(plan, answers, section: str, language: str) -> str:
    """
    Assemble the user prompt for one section.

    Raises:
        ValidationError: unsupported language or no template for ``section``.
    """
    language = validate_language(language)
    template = SECTION_PROMPTS[language].get(section)
    if template is None:
        raise ValidationError(f"No prompt template for section: {section}", details={"section": section})

    title_label, category_label, description_label = _METADATA_LABELS[language]
    metadata = [f"{title_label}: {plan.title}", f"{category_label}: {plan.category}"]
    if plan.description:
        metadata.append(f"{description_label}: {plan.description}")

    return "\n\n".join([
        template,
        "\n".join(metadata),
        build_questionnaire_context(answers),
        _CLOSING[language].format(section=section),
    ]) + f"\nSection: {section}"


# ── Section improvement ──────────────────────────────────────────────────────
# Rewrites existing section text instead of drafting it from the questionnaire.

IMPROVEMENT_TYPES = ("improve", "expand", "simplify")

# improvement type → (default max_tokens, temperature)
IMPROVEMENT_SETTINGS = {
    "improve": (2000, 0.7),
    "expand": (3000, 0.8),
    "simplify": (1500, 0.6),
}

IMPROVEMENT_SYSTEM_PROMPTS = {
    "en": {
        "improve": (
            "You are an expert business consultant specializing in improving business plan content.\n"
            "Improve the provided content so it reads as professional, clear and persuasive.\n\n"
            "Guidelines:\n"
            "- Tighten the structure and wording\n"
            "- Keep every fact from the original\n"
            "- Match the language to the target audience\n"
            "- Return only the improved content"
        ),
        "expand": (
            "You are an expert business consultant specializing in expanding business plan content.\n"
            "Expand the provided content with details, concrete examples and relevant subsections.\n\n"
            "Guidelines:\n"
            "- Add supporting detail and analysis\n"
            "- Organise the result into logical subsections\n"
            "- Stay consistent with the kind of plan\n"
            "- Return only the expanded content"
        ),
        "simplify": (
            "You are an expert business consultant specializing in simplifying business plan content.\n"
            "Simplify the provided content so it is accessible and easy to understand.\n\n"
            "Guidelines:\n"
            "- Replace technical jargon with plain terms\n"
            "- Use short, clear sentences\n"
            "- Keep the essence of the original message\n"
            "- Return only the simplified content"
        ),
    },
    "fr": {
        "improve": (
            "Vous êtes un consultant expert spécialisé dans l'amélioration de contenu de plans d'affaires.\n"
            "Améliorez le contenu fourni pour le rendre professionnel, clair et convaincant.\n\n"
            "Directives :\n"
            "- Resserrer la structure et la formulation\n"
            "- Conserver chaque fait du texte original\n"
            "- Adapter le langage au public cible\n"
            "- Retourner uniquement le contenu amélioré"
        ),
        "expand": (
            "Vous êtes un consultant expert spécialisé dans l'expansion de contenu de plans d'affaires.\n"
            "Étendez le contenu fourni avec des détails, des exemples concrets et des sous-sections pertinentes.\n\n"
            "Directives :\n"
            "- Ajouter des détails et des analyses à l'appui\n"
            "- Organiser le résultat en sous-sections logiques\n"
            "- Rester cohérent avec le type de plan\n"
            "- Retourner uniquement le contenu étendu"
        ),
        "simplify": (
            "Vous êtes un consultant expert spécialisé dans la simplification de contenu de plans d'affaires.\n"
            "Simplifiez le contenu fourni pour le rendre accessible et facile à comprendre.\n\n"
            "Directives :\n"
            "- Remplacer le jargon technique par des termes simples\n"
            "- Utiliser des phrases courtes et claires\n"
            "- Conserver l'essence du message original\n"
            "- Retourner uniquement le contenu simplifié"
        ),
    },
}

_CATEGORY_CONTEXT = {
    "en": {
        "Standard": "This is a traditional business plan (startup/SME) focused on revenue, market analysis and profitability.",
        "NonProfit": "This is a strategic plan for a non-profit focused on mission, impact, grants and beneficiaries.",
        "LeanCanvas": "This is a lean canvas focused on quick validation, MVP and iteration.",
    },
    "fr": {
        "Standard": "Il s'agit d'un plan d'affaires traditionnel (startup/PME) axé sur les revenus, l'analyse de marché et la rentabilité.",
        "NonProfit": "Il s'agit d'un plan stratégique d'OBNL axé sur la mission, l'impact, les subventions et les bénéficiaires.",
        "LeanCanvas": "Il s'agit d'un lean canvas axé sur la validation rapide, le MVP et l'itération.",
    },
}

_IMPROVEMENT_LABELS = {
    "en": {
        "improve": "Content to improve",
        "expand": "Content to expand",
        "simplify": "Content to simplify",
        "instructions": "Specific instructions",
        "target_audience": "Target audience",
        "industry_context": "Industry context",
        "tone": "Desired tone",
    },
    "fr": {
        "improve": "Contenu à améliorer",
        "expand": "Contenu à étendre",
        "simplify": "Contenu à simplifier",
        "instructions": "Instructions spécifiques",
        "target_audience": "Public cible",
        "industry_context": "Contexte industriel",
        "tone": "Ton souhaité",
    },
}

_IMPROVEMENT_CLOSING = {
    "en": {
        "improve": "Please improve this content to make it more professional, clear and persuasive.",
        "expand": "Please expand this content by adding details, examples and relevant subsections.",
        "simplify": "Please simplify this content to make it more accessible and easy to understand.",
    },
    "fr": {
        "improve": "Veuillez améliorer ce contenu en le rendant plus professionnel, clair et convaincant.",
        "expand": "Veuillez étendre ce contenu en ajoutant des détails, des exemples et des sous-sections pertinentes.",
        "simplify": "Veuillez simplifier ce contenu pour le rendre plus accessible et facile à comprendre.",
    },
}


def validate_improvement_type(improvement_type: str | None) -> str:
    kind = (improvement_type or "").strip().lower()
    if kind not in IMPROVEMENT_TYPES:
        raise ValidationError(
            f"Unsupported improvement type: {improvement_type!r}",
            details={"improvement_type": improvement_type, "supported": list(IMPROVEMENT_TYPES)},
        )
    return kind


def get_improvement_system_prompt(improvement_type: str, category: str, language: str) -> str:
    language = validate_language(language)
    base = IMPROVEMENT_SYSTEM_PROMPTS[language][validate_improvement_type(improvement_type)]
    context = _CATEGORY_CONTEXT[language].get(category)
    return f"{base}\n\n{context}" if context else base


def build_improvement_prompt(section: str, content: str, improvement_type: str, language: str,
                             **context) -> str:
    """
    Assemble the user prompt that rewrites ``content`` of one section.

    ``context`` may carry instructions, target_audience, industry_context
    and tone; empty values are left out.
    """
    language = validate_language(language)
    kind = validate_improvement_type(improvement_type)
    labels = _IMPROVEMENT_LABELS[language]

    parts = [f"{labels[kind]}:\n{content}"]
    for key in ("instructions", "target_audience", "industry_context", "tone"):
        value = (context.get(key) or "").strip()
        if value:
            parts.append(f"{labels[key]}: {value}")
    parts.append(_IMPROVEMENT_CLOSING[language][kind])
    return "\n\n".join(parts) + f"\nSection: {section}"
