"""Financial profile helpers shared by handlers and prompts.

All functions are pure and rule-based: they derive metrics and recommendation
strings from the request's declared profile fields. They never raise for missing
fields; absent inputs simply produce fewer lines.
"""

from typing import Any

from budgetsphere.core.routing_types import Request


RETIREMENT_AGE = 65
LOW_SAVINGS_RATE = 0.1
HIGH_SAVINGS_RATE = 0.2
EXCELLENT_SAVINGS_RATE = 0.3


def savings_rate(request: Request) -> float | None:
    if request.monthly_income is None or request.monthly_expenses is None:
        return None
    return (request.monthly_income - request.monthly_expenses) / request.monthly_income


def disposable_income(request: Request) -> float | None:
    if request.monthly_income is None or request.monthly_expenses is None:
        return None
    return request.monthly_income - request.monthly_expenses


def context_data(request: Request) -> dict[str, Any]:
    """Profile fields and free-form context recorded alongside an episode."""
    data = request.hints
    data.pop("preferred_handler", None)
    rate = savings_rate(request)
    if rate is not None:
        data["savingsRate"] = round(rate, 4)
        data["disposableIncome"] = disposable_income(request)
    return data


def profile_lines(request: Request) -> list[str]:
    """Render the declared financial profile as prompt bullet lines."""
    lines: list[str] = []

    if request.monthly_income is not None:
        lines.append(f"- Monthly Income: {request.monthly_income:,.2f}")
        lines.append(f"- Annual Income: {request.monthly_income * 12:,.2f}")
    if request.monthly_expenses is not None:
        lines.append(f"- Monthly Expenses: {request.monthly_expenses:,.2f}")
        lines.append(f"- Annual Expenses: {request.monthly_expenses * 12:,.2f}")

    rate = savings_rate(request)
    if rate is not None:
        lines.append(f"- Current Savings Rate: {rate * 100:.1f}%")
        lines.append(f"- Monthly Surplus: {disposable_income(request):,.2f}")

    if request.risk_tolerance is not None:
        lines.append(f"- Risk Tolerance: {request.risk_tolerance}")
    if request.age is not None:
        lines.append(f"- Age: {request.age} years")
        lines.append(f"- Years to Retirement (assuming {RETIREMENT_AGE}): "
                     f"{max(0, RETIREMENT_AGE - request.age)} years")
    if request.goal is not None:
        lines.append(f"- Primary Financial Goal: {request.goal}")
    if request.financial_goals:
        lines.append(f"- All Financial Goals: {', '.join(request.financial_goals)}")

    return lines


def common_recommendations(request: Request) -> list[str]:
    recommendations: list[str] = []

    rate = savings_rate(request)
    if rate is not None:
        if rate < LOW_SAVINGS_RATE:
            recommendations.append("Consider increasing your savings rate to at least 10% of income")
        if rate > EXCELLENT_SAVINGS_RATE:
            recommendations.append(
                "Excellent savings rate! Consider investing excess savings for long-term growth"
            )

    if request.age is not None and request.age < 30:
        recommendations.append("Start investing early to take advantage of compound growth")

    if request.risk_tolerance == "HIGH":
        recommendations.append("Consider growth-oriented investments given your high risk tolerance")
    elif request.risk_tolerance == "LOW":
        recommendations.append("Focus on conservative investments and emergency fund building")

    return recommendations


def planning_recommendations(request: Request) -> list[str]:
    recommendations: list[str] = []

    if request.age is not None:
        if request.age < 30:
            recommendations.append("Prioritize building an emergency fund and eliminating high-interest debt")
            recommendations.append("Start retirement savings now to maximize compound growth")
        elif request.age < 50:
            recommendations.append("Balance growth and stability in your investment portfolio")
            recommendations.append("Increase retirement contributions if you are behind on your goals")
        else:
            recommendations.append("Shift towards more conservative investments as you approach retirement")
            recommendations.append("Create a detailed retirement income strategy")

    rate = savings_rate(request)
    if rate is not None:
        if rate < LOW_SAVINGS_RATE:
            recommendations.append(
                "PRIORITY: Increase savings rate to at least 10% through expense reduction or income increase"
            )
        elif rate > HIGH_SAVINGS_RATE:
            recommendations.append("Consider tax-advantaged investment accounts for your surplus")

    goal = (request.goal or "").lower()
    if "retirement" in goal or "aposentadoria" in goal:
        recommendations.append("Maximize contributions to tax-advantaged retirement accounts")
    elif "house" in goal or "home" in goal or "casa" in goal:
        recommendations.append("Save for a 20% down payment to avoid mortgage insurance")
    elif "education" in goal or "educação" in goal:
        recommendations.append("Consider dedicated education savings plans for tax advantages")

    return recommendations


def reflection_recommendations(request: Request) -> list[str]:
    recommendations = [
        "Schedule regular financial reviews to maintain awareness of your progress",
        "Set measurable milestones to track progress toward your goals",
    ]
    if request.has_financial_context:
        recommendations.append("Compare your current metrics with your personal goals and benchmarks")
    return recommendations
