from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType

from .types import FALLBACK_CATEGORY


@dataclass(frozen=True)
class DisposalGuidance:
    category: str
    display_name: str
    instructions: str
    recyclable: bool
    environmental_impact: str
    tips: tuple[str, ...] = ()


def _impact(category: str) -> str:
    return (
        f"Proper segregation and disposal of {category} waste helps reduce "
        "landfill waste and conserves natural resources."
    )


_GUIDANCE = MappingProxyType(
    {
        "plastic": DisposalGuidance(
            category="plastic",
            display_name="Plastic",
            instructions="Clean and recycle in the blue bin. Remove caps and labels if possible.",
            recyclable=True,
            environmental_impact=_impact("plastic"),
            tips=(
                "Rinse containers before recycling",
                "Remove caps and lids",
                "Check for recycling symbols",
                "Avoid single-use plastics",
            ),
        ),
        "paper": DisposalGuidance(
            category="paper",
            display_name="Paper",
            instructions="Recycle in the blue bin. Keep it clean and dry.",
            recyclable=True,
            environmental_impact=_impact("paper"),
            tips=(
                "Keep paper dry and clean",
                "Flatten cardboard boxes",
                "Remove tape and staples",
                "Separate glossy paper",
            ),
        ),
        "glass": DisposalGuidance(
            category="glass",
            display_name="Glass",
            instructions="Clean and recycle in designated glass containers. Remove caps and lids.",
            recyclable=True,
            environmental_impact=_impact("glass"),
            tips=(
                "Rinse thoroughly",
                "Remove lids and caps",
                "Separate by color if required",
                "Do not mix with ceramics",
            ),
        ),
        "metal": DisposalGuidance(
            category="metal",
            display_name="Metal",
            instructions=(
                "Rinse and recycle in the blue bin. Larger metal items should go "
                "to a recycling center."
            ),
            recyclable=True,
            environmental_impact=_impact("metal"),
            tips=(
                "Rinse food cans",
                "Crush to save space",
                "Remove paper labels when possible",
                "Keep metals separate from other materials",
            ),
        ),
        "organic": DisposalGuidance(
            category="organic",
            display_name="Organic",
            instructions=(
                "Compost in the green bin. Keep free from plastics and other "
                "non-organic materials."
            ),
            recyclable=True,
            environmental_impact=_impact("organic"),
            tips=(
                "Use for composting",
                "Keep separate from non-compostables",
                "Break down larger pieces",
                "Avoid meat and dairy in home composting",
            ),
        ),
        "wood": DisposalGuidance(
            category="wood",
            display_name="Wood",
            instructions=(
                "Clean wood can be recycled at specialized facilities. Treated "
                "wood may require special disposal."
            ),
            recyclable=True,
            environmental_impact=_impact("wood"),
            tips=(
                "Remove nails, screws and other metal fittings",
                "Keep painted or treated wood separate",
                "Offer reusable furniture for donation first",
            ),
        ),
        "electronic": DisposalGuidance(
            category="electronic",
            display_name="E-Waste",
            instructions="Take to an e-waste collection center. Do not dispose in regular trash.",
            recyclable=True,
            environmental_impact=_impact("electronic"),
            tips=(
                "Never dispose with regular trash",
                "Use dedicated e-waste centers",
                "Remove batteries if possible",
                "Erase personal data before disposal",
            ),
        ),
        "others": DisposalGuidance(
            category="others",
            display_name="Other",
            instructions=(
                "Check your local guidelines. If not recyclable, dispose in the "
                "general waste bin."
            ),
            recyclable=False,
            environmental_impact=(
                "Items that cannot be identified often end up in landfill; "
                "checking local rules keeps recyclables out of it."
            ),
            tips=(
                "Check local recycling guidelines",
                "Try again with a clearer photo of the item",
            ),
        ),
    }
)


def guidance_for(category: str) -> DisposalGuidance:
    return _GUIDANCE.get(category, _GUIDANCE[FALLBACK_CATEGORY])


def all_guidance() -> tuple[DisposalGuidance, ...]:
    return tuple(_GUIDANCE.values())


__all__ = ["DisposalGuidance", "all_guidance", "guidance_for"]
