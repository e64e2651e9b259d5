from urllib.parse import parse_qs, urlparse

import pytest

import chatbot
from chatbot import (
    AdvanceEvent,
    ButtonEvent,
    Catalog,
    ChatContext,
    ChatSession,
    ChatState,
    CloseEvent,
    IdleEvent,
    OpenEvent,
    TextEvent,
    budget_bounds,
    extract_budget,
    extract_slots,
    follow_up_question,
    step,
    suggest_products,
    suggestion_text,
    widened_bounds,
)


@pytest.fixture
def birthday_catalog(catalog_product):
    return Catalog(
        products=[
            catalog_product("Birthday Hamper", 600),
            catalog_product("Birthday Mug", 300),
            catalog_product("Birthday Cake Topper", 900),
            catalog_product("Birthday Frame", 450),
            catalog_product("Steel Bottle", 380),
        ]
    )


@pytest.mark.parametrize(
    "text, expected",
    [
        ("500 ke andar", "Under ₹500"),
        ("1000 tak", "Under ₹1000"),
        ("300", "Under ₹499"),
        ("around 750", "₹500–₹999"),
        ("1200", "₹1000–₹1999"),
        ("2500", "₹2000+"),
        ("koi bhi chalega", None),
    ],
)
def test_extract_budget(text, expected):
    assert extract_budget(text) == expected


def test_budget_bounds():
    assert budget_bounds("Under ₹500") == (0, 500)
    assert budget_bounds("Under ₹499") == (0, 499)
    assert budget_bounds("₹1000–₹1999") == (1000, 1999)
    assert budget_bounds(None) is None
    assert widened_bounds("Under ₹499") == (0, 599)
    assert widened_bounds("₹2000+") == (2000, 10000)
    assert widened_bounds(None) == (0, 10000)


def test_extract_slots_copies_the_context():
    original = ChatContext()
    updated, recognised = extract_slots("gift for my female friend", original)
    assert recognised
    assert updated.recipient == "For Her"
    assert original.recipient is None

    updated, recognised = extract_slots("personalized photo mug", updated)
    assert not recognised
    assert updated.preferences == ["personalized", "photo"]
    assert updated.recipient == "For Her"


def test_follow_up_questions_ask_for_the_first_missing_slot():
    ctx = ChatContext()
    assert follow_up_question(ctx) == chatbot.FOLLOW_UPS["occasion"]
    ctx.occasion = "Birthday"
    assert follow_up_question(ctx) == chatbot.FOLLOW_UPS["recipient"]
    ctx.recipient = "For Her"
    assert follow_up_question(ctx) == chatbot.FOLLOW_UPS["budget"]
    ctx.budget = "Under ₹499"
    assert follow_up_question(ctx) == chatbot.FOLLOW_UPS["preference"]


def test_suggestions_respect_occasion_and_budget(birthday_catalog):
    ctx = ChatContext(occasion="Birthday", budget="Under ₹499")
    picks = suggest_products(ctx, birthday_catalog.products)
    assert [p.name for p in picks] == ["Birthday Mug", "Birthday Frame"]

    text = suggestion_text(ctx, picks)
    assert text.startswith(chatbot.FOUND)
    assert "✅ ₹499 ke andar ye 2 best options hain:" in text
    assert "1. Birthday Mug - ₹300\n2. Birthday Frame - ₹450\n" in text


def test_suggestions_fall_back_to_a_wider_budget(birthday_catalog):
    ctx = ChatContext(occasion="Birthday", budget="Under ₹250")
    picks = suggest_products(ctx, birthday_catalog.products)
    assert [p.name for p in picks] == ["Birthday Mug"]
    text = suggestion_text(ctx, picks)
    assert "⚠️ ₹250 ke andar ye options hain" in text
    assert "💡 Budget thoda badha sakte hain?" in text


def test_suggestions_put_featured_first_and_cap_at_four(catalog_product):
    products = [
        catalog_product("Lamp", 600, is_featured=True),
        catalog_product("Mug", 550),
        catalog_product("Clock", 900, is_featured=True),
        catalog_product("Frame", 700),
        catalog_product("Cushion", 800),
        catalog_product("Candle", 650),
    ]
    picks = suggest_products(ChatContext(budget="₹500–₹999"), products)
    assert [p.name for p in picks] == ["Lamp", "Clock", "Mug", "Candle"]

    ctx = ChatContext(budget="₹500–₹999")
    assert "Aapke budget (₹500–₹999) ke andar ye 4 best options hain:" in suggestion_text(ctx, picks)


def test_suggestion_preferences(catalog_product):
    products = [
        catalog_product("Personalized Mug", 399),
        catalog_product("Plain Mug", 199),
        catalog_product("Wall Clock", 499, category_slug="photo-frames"),
    ]
    personal = suggest_products(ChatContext(preferences=["personalized"]), products)
    assert [p.name for p in personal] == ["Personalized Mug"]
    photo = suggest_products(ChatContext(preferences=["photo"]), products)
    assert [p.name for p in photo] == ["Wall Clock"]


def test_frame_preference_narrows_to_frames(catalog_product):
    ctx, _ = extract_slots("wooden frame wala", ChatContext())
    assert ctx.preferences == ["frame"]

    products = [
        catalog_product("Plain Mug", 199),
        catalog_product("Wooden Frame", 549),
    ]
    assert [p.name for p in suggest_products(ctx, products)] == ["Wooden Frame"]


def test_no_suggestions_offers_whatsapp():
    text = suggestion_text(ChatContext(budget="Under ₹100"), [])
    assert text == f"{chatbot.FOUND}\n\n{chatbot.NO_MATCH}"


def test_open_advance_and_accept(birthday_catalog):
    turn = step(ChatSession(), OpenEvent(), birthday_catalog)
    assert turn.session.state == ChatState.greeting
    assert [m.text for m in turn.messages] == [chatbot.GREETING]

    turn = step(turn.session, AdvanceEvent(), birthday_catalog)
    assert turn.session.state == ChatState.intro
    assert turn.messages[0].buttons == [chatbot.YES_BUTTON, chatbot.LATER_BUTTON]

    # only the greeting advances
    again = step(turn.session, AdvanceEvent(), birthday_catalog)
    assert again.messages == []
    assert again.session.state == ChatState.intro

    turn = step(turn.session, ButtonEvent(label=chatbot.YES_BUTTON), birthday_catalog)
    assert turn.session.state == ChatState.conversation
    assert turn.messages[0].text == chatbot.WELCOME


def test_later_button_points_to_whatsapp(birthday_catalog):
    session = ChatSession(state=ChatState.intro)
    turn = step(session, ButtonEvent(label=chatbot.LATER_BUTTON), birthday_catalog)
    assert turn.messages[0].text == chatbot.LATER
    assert turn.messages[0].buttons == ["💬 WhatsApp Now"]
    assert turn.session.state == ChatState.intro


def test_text_turns(birthday_catalog):
    session = ChatSession(state=ChatState.conversation)

    turn = step(session, TextEvent(text="hello"), birthday_catalog)
    assert turn.messages[0].text == chatbot.FOLLOW_UPS["occasion"]
    assert turn.session.state == ChatState.conversation

    turn = step(turn.session, TextEvent(text="birthday gift 400"), birthday_catalog)
    assert turn.session.state == ChatState.suggestion
    assert turn.session.context.occasion == "Birthday"
    assert turn.session.context.budget == "Under ₹499"
    assert turn.messages[0].text == chatbot.THINKING
    assert [p.name for p in turn.messages[1].products] == ["Birthday Mug", "Birthday Frame"]

    declined = step(turn.session, TextEvent(text="aaj ka weather?"), birthday_catalog)
    assert declined.messages[0].text == chatbot.DECLINE
    assert declined.session.state == ChatState.conversation
    assert declined.session.context == turn.session.context

    info = step(turn.session, TextEvent(text="delivery kab hogi"), birthday_catalog)
    assert info.messages[0].text.startswith(chatbot.ENTHUSIASM)
    assert "60 Min Express Delivery" in info.messages[0].text

    assert step(turn.session, TextEvent(text="   "), birthday_catalog).messages == []


def test_search_trigger_lists_matching_products(catalog_product):
    catalog = Catalog(
        products=[
            catalog_product("Steel Bottle", 350),
            catalog_product("Teddy Bear", 599, description="Cuddly soft toy"),
        ]
    )
    turn = step(ChatSession(state=ChatState.conversation), TextEvent(text="teddy dikhao"), catalog)
    assert turn.session.state == ChatState.suggestion
    assert [p.name for p in turn.messages[0].products] == ["Teddy Bear"]
    assert "Found 1 products!" in turn.messages[0].text


def test_idle_prompt_fires_once(birthday_catalog):
    session = ChatSession(state=ChatState.conversation)
    turn = step(session, IdleEvent(), birthday_catalog)
    assert turn.messages[0].text == chatbot.IDLE
    assert turn.session.idle_prompted
    assert step(turn.session, IdleEvent(), birthday_catalog).messages == []


def test_whatsapp_handoff_carries_the_context(birthday_catalog):
    session = ChatSession(
        state=ChatState.suggestion,
        context=ChatContext(occasion="Birthday", budget="Under ₹499"),
    )
    turn = step(session, ButtonEvent(label="💬 WhatsApp Now"), birthday_catalog)
    message = turn.messages[0]
    assert message.text == chatbot.HANDOFF
    assert message.link.startswith("https://wa.me/919799964364?text=")
    text = parse_qs(urlparse(message.link).query)["text"][0]
    assert "Occasion: Birthday" in text
    assert "Recipient: Not selected" in text
    assert "Budget: Under ₹499" in text

    assert turn.session.state == ChatState.hidden
    assert turn.session.context.occasion == "Birthday"
    # the original session is untouched
    assert session.state == ChatState.suggestion


def test_hidden_widget_ignores_events_until_opened(birthday_catalog):
    hidden = ChatSession()
    for event in (AdvanceEvent(), IdleEvent(), TextEvent(text="birthday"), ButtonEvent(label=chatbot.YES_BUTTON)):
        turn = step(hidden, event, birthday_catalog)
        assert turn.messages == []
        assert turn.session.state == ChatState.hidden


def test_close_resets_the_session(birthday_catalog):
    session = ChatSession(
        state=ChatState.suggestion, context=ChatContext(occasion="Birthday"), idle_prompted=True
    )
    turn = step(session, CloseEvent(), birthday_catalog)
    assert turn.session == ChatSession()
    assert turn.messages == []


def test_chat_endpoint(client, make_product):
    make_product("Birthday Mug", 300)
    make_product("Birthday Hamper", 1500)

    turn = client.post("/api/chat", json={"event": {"kind": "open"}}).json()
    assert turn["session"] == {
        "state": "greeting",
        "context": {"occasion": None, "recipient": None, "budget": None, "preferences": []},
        "idlePrompted": False,
    }

    session = dict(turn["session"], state="conversation")
    turn = client.post(
        "/api/chat", json={"session": session, "event": {"kind": "text", "text": "birthday gift 400"}}
    ).json()
    assert turn["session"]["state"] == "suggestion"
    assert [p["name"] for p in turn["messages"][1]["products"]] == ["Birthday Mug"]

    assert client.post("/api/chat", json={"event": {"kind": "dance"}}).status_code == 400
