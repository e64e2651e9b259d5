"""
Gift Buddy: the rule-based gift assistant.

Everything here is a pure function of (session, event, catalog). The browser
widget owns the timers and sends `advance` once the greeting has been shown
and `idle` when the visitor goes quiet; the reducer only decides what the bot
says next and which state it ends up in.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Callable, Dict, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import Field

from checkout import format_rupees, whatsapp_link
from schemas import ApiModel, Category, Product
from search import search_products


class ChatState(str, Enum):
    hidden = "hidden"
    greeting = "greeting"
    intro = "intro"
    conversation = "conversation"
    suggestion = "suggestion"


# -----------------------------
# Copy
# -----------------------------

GREETING = "Namaste! 😊 Main Gift Buddy hoon - aapka gift-finding friend!"
INTRO = (
    "Main Gift Buddy hoon – aapka personal gift assistant! 🎁✨\n\n"
    "Gift choose karna hai? Main aapki har step me help karunga!"
)
YES_BUTTON = "Haan, help chahiye! 🎉"
LATER_BUTTON = "Nahi, baad mein"
WHATSAPP_BUTTONS = ("💬 WhatsApp Now", "📞 Direct WhatsApp")
WELCOME = "Yay! 🎊 Main excited hoon!\n\nBatao, aapko kya chahiye? Main aapke liye perfect gift dhoondh dunga! ✨"
LATER = "Koi baat nahi! Jab ready ho to WhatsApp pe message kar dena 👍"
IDLE = "Confused ho? 😄\nWhatsApp pe bol do, main simple language me samjha dunga"
HANDOFF = "Chaliye, WhatsApp pe baat karte hain! 💬"
DECLINE = (
    "Sorry 😅 Main sirf Gift Choice website aur gifts ke baare mein help kar sakta hoon. "
    "Website se related koi sawaal ho to zaroor pucho!"
)
ENTHUSIASM = "Wah! 😄"
THINKING = "Hmm... let me think... 🤔"
FOUND = "Mil gaya! 🎯 Perfect match!"
NO_MATCH = (
    "😅 Is budget me exact match nahi mila.\n\n"
    "Kya aap budget thoda badha sakte hain? Ya WhatsApp pe baat karein, "
    "main aapke liye perfect gift dhoondh dunga! 💬"
)

FOLLOW_UPS = {
    "occasion": "Kis occasion ke liye gift chahiye? (Birthday, Anniversary, etc.)",
    "recipient": "Gift kis ke liye hai? (Him, Her, Baby, Couple)",
    "budget": "Budget kitna hai? (Under ₹499, ₹500-999, etc.)",
    "preference": "Aur koi specific requirement hai? (Personalized, Photo frame, etc.)",
}

OUT_OF_SCOPE = (
    "weather", "mausam", "time", "samay", "news", "samachar",
    "cricket", "movie", "film", "politics", "rajniti",
    "sports", "khel", "stock", "share", "bitcoin", "crypto",
)

SEARCH_TRIGGERS = ("chahiye", "dikhao", "show")
MAX_RESULTS = 4
FALLBACK_RESULTS = 3
BUDGET_TOLERANCE = 100

# -----------------------------
# Slots
# -----------------------------

# Later keys win when several match, so "female" ends up as For Her.
OCCASIONS: Dict[str, str] = {
    "birthday": "Birthday",
    "janamdin": "Birthday",
    "anniversary": "Anniversary",
    "baby": "Baby / New Born",
    "wedding": "Wedding",
    "shadi": "Wedding",
    "general": "General Gift",
}

RECIPIENTS: Dict[str, str] = {
    "him": "For Him",
    "male": "For Him",
    "ladka": "For Him",
    "her": "For Her",
    "female": "For Her",
    "ladki": "For Her",
    "baby": "For Baby",
    "bachcha": "For Baby",
    "couple": "Couple",
    "jodi": "Couple",
}

OCCASION_TERMS: Dict[str, List[str]] = {
    "Birthday": ["birthday", "bday", "cake"],
    "Anniversary": ["anniversary", "couple", "love"],
    "Baby / New Born": ["baby", "newborn", "infant"],
    "Wedding": ["wedding", "marriage", "bridal"],
}

RECIPIENT_TERMS: Dict[str, List[str]] = {
    "For Him": ["bottle", "water", "personalized"],
    "For Her": ["bottle", "photo", "frame", "personalized"],
    "For Baby": ["soft", "toy", "plush", "teddy"],
    "Couple": ["photo", "frame", "anniversary", "personalized"],
}

BUDGET_BANDS: Dict[str, Tuple[float, float]] = {
    "Under ₹499": (0, 499),
    "₹500–₹999": (500, 999),
    "₹1000–₹1999": (1000, 1999),
    "₹2000+": (2000, 10000),
}

# Used only when the visitor wrote no usable number.
BUDGET_KEYWORDS: Dict[str, str] = {
    "499": "Under ₹499",
    "500": "₹500–₹999",
    "999": "₹500–₹999",
    "1000": "₹1000–₹1999",
    "1999": "₹1000–₹1999",
    "2000": "₹2000+",
}

UNDER_WORDS = ("andar", "under", "tak", "se kam")
PREFERENCES = ("personalized", "photo", "frame", "name", "message", "custom")

_UNDER_RE = re.compile(r"Under ₹(\d+)")
_NUMBER_RE = re.compile(r"\d+")


# -----------------------------
# Models
# -----------------------------

class ChatContext(ApiModel):
    occasion: Optional[str] = None
    recipient: Optional[str] = None
    budget: Optional[str] = None
    preferences: List[str] = []


class ChatSession(ApiModel):
    state: ChatState = ChatState.hidden
    context: ChatContext = Field(default_factory=ChatContext)
    idle_prompted: bool = False


class BotMessage(ApiModel):
    text: str
    buttons: List[str] = []
    products: List[Product] = []
    link: Optional[str] = None


class OpenEvent(ApiModel):
    kind: Literal["open"] = "open"


class AdvanceEvent(ApiModel):
    kind: Literal["advance"] = "advance"


class ButtonEvent(ApiModel):
    kind: Literal["button"] = "button"
    label: str


class TextEvent(ApiModel):
    kind: Literal["text"] = "text"
    text: str


class IdleEvent(ApiModel):
    kind: Literal["idle"] = "idle"


class CloseEvent(ApiModel):
    kind: Literal["close"] = "close"


ChatEvent = Annotated[
    Union[OpenEvent, AdvanceEvent, ButtonEvent, TextEvent, IdleEvent, CloseEvent],
    Field(discriminator="kind"),
]


class ChatRequest(ApiModel):
    session: ChatSession = Field(default_factory=ChatSession)
    event: ChatEvent


class ChatTurn(ApiModel):
    session: ChatSession
    messages: List[BotMessage] = []


@dataclass
class Catalog:
    products: List[Product] = field(default_factory=list)
    categories: List[Category] = field(default_factory=list)
    whatsapp_number: str = "919799964364"


# -----------------------------
# Knowledge base
# -----------------------------

def _price_line(product: Product) -> str:
    return f"{product.name} - ₹{format_rupees(product.from_price)}"


def _delivery(catalog: Catalog) -> Optional[str]:
    return (
        "🚚 Delivery Info (Gift Buddy Special!):\n\n"
        "⚡ 60 Min Express Delivery - Select areas me!\n"
        "📦 Standard: 2-3 business days\n"
        "🎁 Free delivery on orders above ₹999\n"
        "📱 Track via WhatsApp anytime!\n\n"
        "Gift Buddy guarantee: Fast & safe delivery! ✨"
    )


def _payment(catalog: Catalog) -> Optional[str]:
    return (
        "💳 Payment Options:\n• Cash on Delivery (COD)\n• Online payment (UPI, Cards, Wallets)\n"
        "• Secure payment gateway\n• No hidden charges"
    )


def _returns(catalog: Catalog) -> Optional[str]:
    return (
        "🔄 Return Policy:\n• 7-day hassle-free return\n• Unused items in original packaging\n"
        "• Easy return process via WhatsApp\n• Full refund or exchange available"
    )


def _wrapping(catalog: Catalog) -> Optional[str]:
    return (
        "🎁 Gift Wrapping:\n• Beautiful complimentary gift packaging\n• Free gift wrapping on all orders\n"
        "• Custom message card included\n• Perfect presentation guaranteed"
    )


def _categories(catalog: Catalog) -> Optional[str]:
    listing = "\n".join(f"🎁 {c.name}" for c in catalog.categories)
    return (
        f"📦 Gift Buddy's Categories Collection:\n\n{listing}\n\n"
        "✨ Har category me unique gifts hain!\n"
        "Kis category me interest hai? Main detailed info de sakta hoon! 😊"
    )


def _products(catalog: Catalog) -> Optional[str]:
    listing = "\n".join(f"• {c.name}" for c in catalog.categories)
    return (
        f"🛍️ Products:\nHumare paas {len(catalog.products)}+ unique gifts hain:\n{listing}\n\n"
        "Kya specific product chahiye?"
    )


def _price_range(catalog: Catalog) -> Optional[str]:
    if not catalog.products:
        return None
    prices = [p.from_price for p in catalog.products]
    return (
        f"💰 Price Range:\n• Starting from ₹{format_rupees(min(prices))}\n"
        f"• Up to ₹{format_rupees(max(prices))}+\n"
        "• Budget-friendly options available\n• Premium gifts also available\n\n"
        "Aapka budget kitna hai?"
    )


def _contact(catalog: Catalog) -> Optional[str]:
    local = "".join(ch for ch in catalog.whatsapp_number if ch.isdigit())[-10:]
    return (
        f"📞 Contact Us:\n• WhatsApp: {local[:5]} {local[5:]}\n• 24/7 Customer Support\n"
        "• Quick response guaranteed\n• We're here to help! 😊"
    )


def _about(catalog: Catalog) -> Optional[str]:
    return (
        "🏢 About Gift Choice & Gift Buddy:\n\n"
        "✨ Premium gift store with unique selections\n"
        "🎁 Thoughtful gifts for every emotion\n"
        "⚡ Lightning-fast delivery\n"
        "💝 Personalized options available\n"
        "❤️ 100% customer satisfaction\n\n"
        "'Enfolding Your Emotions...' - Hum aapke emotions ko perfect gift me convert karte hain!\n\n"
        "Main Gift Buddy - aapka personal gift assistant! Always here to help! 😊🎉"
    )


def _customisation(catalog: Catalog) -> Optional[str]:
    return (
        "✨ Customization:\n• Add name/message on gifts\n• Photo printing available\n"
        "• Custom designs possible\n• Personalized packaging\n• WhatsApp pe details discuss karein!"
    )


def _best_sellers(catalog: Catalog) -> Optional[str]:
    featured = [p for p in catalog.products if p.is_featured][:3]
    if not featured:
        return None
    listing = "\n".join(f"🎁 {_price_line(p)}" for p in featured)
    return (
        f"⭐ Gift Buddy's Best Sellers (Customer Favorites!):\n\n{listing}\n\n"
        "✨ Ye sabse zyada bikne wale gifts hain!\nGift Buddy recommends these! 😊"
    )


def _new_arrivals(catalog: Catalog) -> Optional[str]:
    fresh = [p for p in catalog.products if p.is_new_arrival][:3]
    if not fresh:
        return None
    listing = "\n".join(f"✨ {_price_line(p)}" for p in fresh)
    return (
        f"🆕 Gift Buddy's Fresh Arrivals (Just In!):\n\n{listing}\n\n"
        "🎉 Ye brand new products hain!\nGift Buddy exclusive picks! Check karein! 😊"
    )


KNOWLEDGE_BASE: Sequence[Tuple[Tuple[str, ...], Callable[[Catalog], Optional[str]]]] = (
    (("delivery", "deliver", "kitne din"), _delivery),
    (("payment", "pay", "kaise pay", "cash"), _payment),
    (("return", "exchange", "badal", "wapas"), _returns),
    (("wrap", "packaging", "gift box"), _wrapping),
    (("category", "kya kya hai", "types"), _categories),
    (("product", "kya kya milta", "items"), _products),
    (("price", "kitna", "cost", "rate"), _price_range),
    (("contact", "phone", "number", "help"), _contact),
    (("about", "kya hai", "company", "gift buddy"), _about),
    (("custom", "personalize", "name", "photo"), _customisation),
    (("best", "popular", "top", "trending"), _best_sellers),
    (("new", "latest", "recent"), _new_arrivals),
)


def is_out_of_scope(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in OUT_OF_SCOPE)


def knowledge_base_answer(text: str, catalog: Catalog) -> Optional[str]:
    """First fixed-answer topic whose keywords appear in the text."""
    lowered = text.lower()
    for keywords, answer in KNOWLEDGE_BASE:
        if any(k in lowered for k in keywords):
            reply = answer(catalog)
            if reply is not None:
                return reply
    return None


# -----------------------------
# Slot extraction
# -----------------------------

def extract_budget(text: str) -> Optional[str]:
    """Budget descriptor from free text.

    A number with an "under" word is an upper bound ("500 ke andar" is
    "Under ₹500"); a bare number falls into one of the four bands.
    """
    lowered = text.lower()
    amount = None
    match = _NUMBER_RE.search(lowered)
    if match:
        number = int(match.group())
        if 0 < number < 100000:
            amount = number

    if amount is not None:
        if any(word in lowered for word in UNDER_WORDS):
            return f"Under ₹{amount}"
        if amount <= 499:
            return "Under ₹499"
        if amount <= 999:
            return "₹500–₹999"
        if amount <= 1999:
            return "₹1000–₹1999"
        return "₹2000+"

    for keyword, band in BUDGET_KEYWORDS.items():
        if keyword in lowered:
            return band
    return None


def extract_slots(text: str, context: ChatContext) -> Tuple[ChatContext, bool]:
    """Fold this turn's slots into a copy of the context.

    The flag says whether an occasion, recipient or budget was recognised.
    """
    lowered = text.lower().strip()
    updated = context.model_copy(deep=True)
    recognised = False

    for keyword, occasion in OCCASIONS.items():
        if keyword in lowered:
            updated.occasion = occasion
            recognised = True

    for keyword, recipient in RECIPIENTS.items():
        if keyword in lowered:
            updated.recipient = recipient
            recognised = True

    budget = extract_budget(lowered)
    if budget:
        updated.budget = budget
        recognised = True

    for tag in PREFERENCES:
        if tag in lowered and tag not in updated.preferences:
            updated.preferences.append(tag)

    return updated, recognised


def follow_up_question(context: ChatContext) -> str:
    if not context.occasion:
        return FOLLOW_UPS["occasion"]
    if not context.recipient:
        return FOLLOW_UPS["recipient"]
    if not context.budget:
        return FOLLOW_UPS["budget"]
    return FOLLOW_UPS["preference"]


# -----------------------------
# Suggestions
# -----------------------------

def budget_bounds(budget: Optional[str]) -> Optional[Tuple[float, float]]:
    if not budget:
        return None
    under = _UNDER_RE.fullmatch(budget)
    if under:
        return (0, int(under.group(1)))
    return BUDGET_BANDS.get(budget)


def widened_bounds(budget: Optional[str]) -> Tuple[float, float]:
    bounds = budget_bounds(budget)
    if bounds is None:
        return (0, 10000)
    low, high = bounds
    if budget == "₹2000+":
        return bounds
    return (low, high + BUDGET_TOLERANCE)


def _within(product: Product, bounds: Tuple[float, float]) -> bool:
    return bounds[0] <= product.min_price <= bounds[1]


def suggest_products(context: ChatContext, products: Sequence[Product]) -> List[Product]:
    """Filter and rank the catalog for the current context (at most four)."""
    filtered = list(products)

    terms = OCCASION_TERMS.get(context.occasion or "")
    if terms:
        filtered = search_products(filtered, " ".join(terms))

    terms = RECIPIENT_TERMS.get(context.recipient or "")
    if terms:
        filtered = search_products(filtered, " ".join(terms))

    if context.budget:
        bounds = budget_bounds(context.budget)
        if bounds is not None:
            filtered = [p for p in filtered if _within(p, bounds)]
        if not filtered:
            wider = widened_bounds(context.budget)
            alternatives = [p for p in products if _within(p, wider)]
            if alternatives:
                filtered = alternatives[:FALLBACK_RESULTS]

    filtered.sort(key=lambda p: (not p.is_featured, p.min_price))

    prefs = context.preferences
    if "personalized" in prefs or "custom" in prefs:
        filtered = [
            p for p in filtered
            if "personalized" in p.name.lower() or "personalized" in p.description.lower()
        ]
    if "photo" in prefs or "frame" in prefs:
        filtered = [
            p for p in filtered
            if p.category_slug == "photo-frames"
            or "photo" in p.name.lower()
            or "frame" in p.name.lower()
        ]

    return filtered[:MAX_RESULTS]


def suggestion_text(context: ChatContext, products: Sequence[Product]) -> str:
    if not products:
        return f"{FOUND}\n\n{NO_MATCH}"

    listing = "".join(
        f"{i}. {p.name} - ₹{format_rupees(p.min_price)}\n" for i, p in enumerate(products, start=1)
    )
    count = len(products)
    bounds = budget_bounds(context.budget)
    if bounds is None:
        return f"{FOUND}\n\n✨ Ye {count} best options hain:\n\n{listing}"

    in_budget = all(_within(p, bounds) for p in products)
    if _UNDER_RE.fullmatch(context.budget or ""):
        limit = format_rupees(bounds[1])
        header = (
            f"✅ ₹{limit} ke andar ye {count} best options hain:"
            if in_budget
            else f"⚠️ ₹{limit} ke andar ye options hain (kuch thode upar bhi hain):"
        )
    else:
        header = (
            f"✅ Aapke budget ({context.budget}) ke andar ye {count} best options hain:"
            if in_budget
            else "⚠️ Aapke budget ke hisaab se ye options hain (kuch thode upar bhi hain):"
        )
    closing = (
        "💬 Inme se koi pasand aaya? Ya WhatsApp pe baat karein!"
        if in_budget
        else "💡 Budget thoda badha sakte hain? Ya WhatsApp pe baat karein!"
    )
    return f"{FOUND}\n\n{header}\n\n{listing}\n\n{closing}"


def handoff_text(context: ChatContext) -> str:
    return (
        "Hi! Gift Choice se contact kar raha hoon.\n\n"
        f"Occasion: {context.occasion or 'Not selected'}\n"
        f"Recipient: {context.recipient or 'Not selected'}\n"
        f"Budget: {context.budget or 'Not selected'}\n\n"
        "Help chahiye gift choose karne me."
    )


# -----------------------------
# Reducer
# -----------------------------

def respond(text: str, context: ChatContext, catalog: Catalog) -> Tuple[ChatContext, List[BotMessage]]:
    """Answer one free-text message: decline, fact, search, suggestion or follow-up."""
    if is_out_of_scope(text):
        return context, [BotMessage(text=DECLINE)]

    info = knowledge_base_answer(text, catalog)
    if info is not None:
        return context, [BotMessage(text=f"{ENTHUSIASM}\n\n{info}")]

    lowered = text.lower()
    if any(trigger in lowered for trigger in SEARCH_TRIGGERS):
        found = search_products(catalog.products, text)[:MAX_RESULTS]
        if found:
            return context, [
                BotMessage(text=f"{FOUND}\n\nFound {len(found)} products! 👇", products=found)
            ]

    updated, recognised = extract_slots(text, context)
    if recognised and (updated.occasion or updated.recipient or updated.budget):
        picks = suggest_products(updated, catalog.products)
        return updated, [
            BotMessage(text=THINKING),
            BotMessage(text=suggestion_text(updated, picks), products=picks),
        ]

    return updated, [BotMessage(text=follow_up_question(updated))]


def _whatsapp_message(context: ChatContext, catalog: Catalog) -> BotMessage:
    return BotMessage(text=HANDOFF, link=whatsapp_link(catalog.whatsapp_number, handoff_text(context)))


def step(session: ChatSession, event: ChatEvent, catalog: Catalog) -> ChatTurn:
    """Advance the conversation by one event. The input session is not modified."""
    current = session.model_copy(deep=True)

    if isinstance(event, OpenEvent):
        return ChatTurn(
            session=ChatSession(state=ChatState.greeting),
            messages=[BotMessage(text=GREETING)],
        )

    if isinstance(event, CloseEvent):
        return ChatTurn(session=ChatSession())

    if current.state == ChatState.hidden:
        return ChatTurn(session=current)

    if isinstance(event, AdvanceEvent):
        if current.state != ChatState.greeting:
            return ChatTurn(session=current)
        current.state = ChatState.intro
        return ChatTurn(
            session=current,
            messages=[BotMessage(text=INTRO, buttons=[YES_BUTTON, LATER_BUTTON])],
        )

    if isinstance(event, IdleEvent):
        if current.idle_prompted:
            return ChatTurn(session=current)
        current.idle_prompted = True
        return ChatTurn(
            session=current,
            messages=[BotMessage(text=IDLE, buttons=[WHATSAPP_BUTTONS[0]])],
        )

    if isinstance(event, ButtonEvent):
        if event.label in WHATSAPP_BUTTONS:
            message = _whatsapp_message(current.context, catalog)
            current.state = ChatState.hidden
            return ChatTurn(session=current, messages=[message])
        if current.state != ChatState.intro:
            return ChatTurn(session=current)
        if event.label == YES_BUTTON:
            current.state = ChatState.conversation
            return ChatTurn(session=current, messages=[BotMessage(text=WELCOME)])
        return ChatTurn(
            session=current,
            messages=[BotMessage(text=LATER, buttons=[WHATSAPP_BUTTONS[0]])],
        )

    if isinstance(event, TextEvent):
        if not event.text.strip():
            return ChatTurn(session=current)
        context, messages = respond(event.text, current.context, catalog)
        current.context = context
        current.state = (
            ChatState.suggestion if any(m.products for m in messages) else ChatState.conversation
        )
        return ChatTurn(session=current, messages=messages)

    return ChatTurn(session=current)
