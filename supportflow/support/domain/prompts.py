"""
Support Prompt Builder
======================

Builds the system and user prompts for draft generation.

The model writes only the message body; the signature is appended
server-side from the tenant's agent config.
"""

from supportflow.support.domain.entities import AgentConfig, Ticket

TONE_RULES = {
    "friendly": "Schrijf vriendelijk en toegankelijk.",
    "formal": "Schrijf formeel en zakelijk (u-vorm).",
    "direct": "Schrijf kort en to the point.",
}


class SupportPromptBuilder:
    """
    Builds prompts for support draft generation.

    Following DRY principle - all prompt logic in one place.
    """

    SYSTEM_TEMPLATE = """Je bent een AI customer support agent voor {company}.

ROL:
Je behandelt support tickets professioneel en volgens bedrijfsbeleid.

GEDRAGSREGELS:
- {tone_rule}
- {empathy_rule}
- {discount_rule}
- Verzinnen van informatie is verboden.
- Als cruciale informatie ontbreekt: stel gerichte vragen of zet status op NEEDS_HUMAN.

HANDTEKENING – ABSOLUTE REGEL:
- Schrijf UITSLUITEND de inhoud van het e-mailbericht.
- Voeg GEEN afsluitende zin en GEEN handtekening toe.
- Gebruik NOOIT afsluitingen zoals "Met vriendelijke groet", "Kind regards", "Best regards" of "Groeten".
- Vermeld NIET de bedrijfsnaam of teamnaam onderaan.
- Eindig de body direct na de laatste inhoudelijke zin.
- De handtekening wordt automatisch door de server toegevoegd.

BESLISLOGICA:
- Gebruik "DRAFT_OK" wanneer een correct antwoord mogelijk is.
- Gebruik "NEEDS_HUMAN" wanneer beleid onzeker is, informatie ontbreekt of risico bestaat.
- Stel confidence in:
  - 0.8 – 1.0 bij duidelijke, veilige cases
  - 0.4 – 0.7 bij ontbrekende informatie
  - 0.0 – 0.3 bij escalatie of onzekerheid

OUTPUT CONTRACT (VOLG EXACT):
Je MOET uitsluitend geldige JSON teruggeven. Geen markdown, geen uitleg,
geen tekst voor of na de JSON, geen extra keys.

{{
  "status": "DRAFT_OK" | "NEEDS_HUMAN",
  "confidence": number tussen 0 en 1,
  "draft": {{
    "subject": string,
    "body": string
  }},
  "actions": [
    {{"type": "ASK_CLARIFYING_QUESTION" | "REQUEST_ORDER_ID" | "OFFER_DISCOUNT" | "REQUEST_RETURN" | "ESCALATE_TO_HUMAN",
      "question": string | null, "amount": number | null, "currency": string | null, "reason": string | null}}
  ],
  "reasons": [string]
}}"""

    USER_TEMPLATE = """TAAL:
Antwoord in taal: {language}

TICKET INPUT:
Kanaal: {channel}
Subject: {subject}
Body: {body}

KLANT:
Naam: {customer_name}
Email: {customer_email}

ORDER:
OrderId: {order_id}
Product: {product_name}
Betaald bedrag: {price_paid} {currency}

HANDTEKENING (NIET IN JSON ZETTEN):
De server voegt automatisch toe:
{signature}"""

    @classmethod
    def build_system_prompt(
        cls,
        config: AgentConfig,
        knowledge_context: str = "",
        knowledge_heading: str = "Relevante interne kennis:"
    ) -> str:
        """System prompt, with retrieved knowledge appended when present."""
        empathy_rule = (
            "Toon gepaste empathie waar nodig, maar blijf feitelijk."
            if config.empathy_enabled
            else "Gebruik geen empathische zinnen. Houd het functioneel."
        )
        if config.allow_discount:
            discount_rule = (
                f"Kortingen zijn toegestaan tot maximaal €{config.max_discount_amount:g}. "
                "Ga nooit boven dit bedrag."
            )
        else:
            discount_rule = "Kortingen zijn NIET toegestaan. Bied geen korting aan."

        prompt = cls.SYSTEM_TEMPLATE.format(
            company=config.company_name,
            tone_rule=TONE_RULES.get(config.tone, TONE_RULES["friendly"]),
            empathy_rule=empathy_rule,
            discount_rule=discount_rule,
        )
        if knowledge_context:
            prompt = f"{prompt}\n\n{knowledge_heading}\n{knowledge_context}"
        return prompt

    @classmethod
    def build_user_prompt(cls, ticket: Ticket, config: AgentConfig) -> str:
        """User prompt with the ticket fields and target language."""
        order = ticket.order
        price = "" if order.price_paid is None else f"{order.price_paid:g}"
        return cls.USER_TEMPLATE.format(
            language=ticket.reply_language(config),
            channel=ticket.channel,
            subject=ticket.subject,
            body=ticket.body,
            customer_name=ticket.customer.name or "",
            customer_email=ticket.customer.email or "",
            order_id=order.order_id or "",
            product_name=order.product_name or "",
            price_paid=price,
            currency=order.currency or "",
            signature=config.signature,
        )
