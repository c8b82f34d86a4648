"""
Static reference data — built-in subjects, bank details, premium plans.

The subject list and bank details are the availability fallback used when the
document store returns nothing or cannot be reached.
"""

from __future__ import annotations

from dataclasses import dataclass

from models import PaymentSettings, Subject


STUDENT_CLASSES = ("SS1", "SS2", "SS3")
EXAM_TYPES = ("WAEC", "JAMB", "NECO")
THEMES = ("light", "dark")

# Question bank sizing per subject
QUESTIONS_READY_MIN = 40
QUESTIONS_MAX = 70


DEFAULT_SUBJECTS: tuple[Subject, ...] = (
    Subject(id="maths", name="Mathematics", icon="📐", color="bg-blue-100 text-blue-600"),
    Subject(id="english", name="English Language", icon="📚", color="bg-purple-100 text-purple-600"),
    Subject(id="physics", name="Physics", icon="⚛️", color="bg-orange-100 text-orange-600"),
    Subject(id="chemistry", name="Chemistry", icon="🧪", color="bg-green-100 text-green-600"),
    Subject(id="biology", name="Biology", icon="🧬", color="bg-red-100 text-red-600"),
    Subject(id="economics", name="Economics", icon="💹", color="bg-indigo-100 text-indigo-600"),
    Subject(id="govt", name="Government", icon="🏛️", color="bg-yellow-100 text-yellow-600"),
    Subject(id="lit", name="Literature", icon="🎭", color="bg-pink-100 text-pink-600"),
)

DEFAULT_SETTINGS = PaymentSettings(
    bank="FCMB",
    account_number="1043861839",
    account_name="Abraham Blessing Michael",
)


@dataclass(frozen=True)
class PremiumPlan:
    id: str
    name: str
    price: int       # naira
    duration: str    # "month" | "term" | "year"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "price": self.price, "duration": self.duration}


PREMIUM_PLANS: tuple[PremiumPlan, ...] = (
    PremiumPlan(id="monthly", name="Monthly Access", price=1500, duration="month"),
    PremiumPlan(id="term", name="Term Access", price=5000, duration="term"),
    PremiumPlan(id="yearly", name="Yearly Access", price=10000, duration="year"),
)


def get_plan(plan_id: str) -> PremiumPlan | None:
    for plan in PREMIUM_PLANS:
        if plan.id == plan_id:
            return plan
    return None
