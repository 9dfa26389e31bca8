"""Menu content — keywords, canned replies and catalogue bundles."""

from dataclasses import dataclass, field
from typing import Optional

from .sessions import Step

MENU_STARTERS = frozenset({"hi", "hii", "hello", "hey", "menu", "start"})


def normalize(text: str) -> str:
    return (text or "").strip().lower()


def is_menu_starter(text: str) -> bool:
    return normalize(text) in MENU_STARTERS


@dataclass(frozen=True)
class MenuAction:
    kind: str  # 'reply', 'submenu', 'bundle', 'back'
    text: str = ""
    documents: tuple[str, ...] = ()
    target: Optional[Step] = None


@dataclass
class Menu:
    business_name: str
    prompts: dict = field(default_factory=dict)   # Step -> menu text
    actions: dict = field(default_factory=dict)   # Step -> {choice: MenuAction}

    def render(self, step: Step) -> str:
        return self.prompts[step]

    def choices(self, step: Step) -> frozenset:
        return frozenset(self.actions.get(step, {}))

    def action(self, step: Step, choice: str) -> Optional[MenuAction]:
        return self.actions.get(step, {}).get(choice)

    def greeting(self) -> str:
        return (
            f"Hello! 👋 Welcome to *{self.business_name}*.\n"
            "Type *menu* anytime to see how we can help you."
        )

    @staticmethod
    def bundle_announcement(title: str, count: int) -> str:
        noun = "document" if count == 1 else "documents"
        return f"📄 Sending {title} ({count} {noun}). Please wait..."

    @staticmethod
    def busy_notice() -> str:
        return "⏳ Still sending your previous documents. Please wait a moment."


LT_PANELS = "lt-panels.pdf"
DISTRIBUTION_BOARDS = "distribution-boards.pdf"
PRICE_LIST = "price-list.pdf"


def build_menu(business_name: str) -> Menu:
    """Menu tree for the auto-responder."""
    main_prompt = (
        f"*{business_name}* — Main Menu\n\n"
        "1️⃣ Products & catalogues\n"
        "2️⃣ About us\n"
        "3️⃣ Contact & location\n"
        "4️⃣ Dealer enquiry\n\n"
        "Reply with a number."
    )
    products_prompt = (
        "*Products*\n\n"
        "1️⃣ LT panels catalogue\n"
        "2️⃣ Distribution boards catalogue\n"
        "3️⃣ Full catalogue with price list\n"
        "0️⃣ Back to main menu\n\n"
        "Reply with a number."
    )

    return Menu(
        business_name=business_name,
        prompts={
            Step.MAIN_MENU: main_prompt,
            Step.PRODUCTS: products_prompt,
        },
        actions={
            Step.MAIN_MENU: {
                "1": MenuAction("submenu", target=Step.PRODUCTS),
                "2": MenuAction("reply", text=(
                    f"*{business_name}* designs and manufactures LT switchgear, "
                    "control panels and distribution boards for industrial and "
                    "commercial projects."
                )),
                "3": MenuAction("reply", text=(
                    "📞 Call or WhatsApp us on this number.\n"
                    "🕘 Monday to Saturday, 9:30 AM – 6:30 PM."
                )),
                "4": MenuAction("reply", text=(
                    "Thank you for your interest in becoming a dealer. "
                    "Please send your name, city and firm name, and our sales team "
                    "will get in touch."
                )),
            },
            Step.PRODUCTS: {
                "1": MenuAction("bundle", text="the LT panels catalogue",
                                documents=(LT_PANELS,)),
                "2": MenuAction("bundle", text="the distribution boards catalogue",
                                documents=(DISTRIBUTION_BOARDS,)),
                "3": MenuAction("bundle", text="the full catalogue",
                                documents=(LT_PANELS, DISTRIBUTION_BOARDS, PRICE_LIST)),
                "0": MenuAction("back", target=Step.MAIN_MENU),
            },
        },
    )
