"""Six-word lowercase passphrases for encrypted backups."""

from __future__ import annotations

import re
import secrets

from garden.errors import InvalidPassphraseError

WORD_COUNT = 6

_WORD_RE = re.compile(r"^[a-z]+$")

WORDS = (
    "apple banana cherry date elderberry fig grape honeydew kiwi lemon "
    "mango nectarine orange peach quince raspberry strawberry tangerine watermelon "
    "almond brazil cashew walnut pistachio peanut pecan hazelnut macadamia "
    "bread butter cheese donut eclair fudge gelato honey icecream jam "
    "kitchen milk noodle olive pasta quiche radish salad taco "
    "umbrella violin window xylophone yellow zebra airplane bicycle canoe driver "
    "elephant falcon giraffe horse iguana jaguar koala lion monkey nightingale "
    "octopus penguin quail rabbit snake tiger unicorn vulture whale yak "
    "ocean river stream mountain valley desert forest jungle island canyon "
    "autumn winter spring summer morning evening night dawn dusk noon "
    "camera pencil keyboard monitor printer speaker battery charger cable adapter "
    "doctor teacher engineer artist writer dancer singer actor chef pilot "
    "cotton denim leather linen silk suede velvet wool polyester nylon "
    "circle square triangle rectangle pentagon hexagon octagon sphere cube pyramid "
    "happy brave clever peaceful quiet steady strong gentle bright calm "
    "dream focus goal hope idea journey memory moment passion vision "
    "flower garden meadow park pond sunset rainbow planet galaxy "
    "market coffee dinner lunch picnic recipe spice sugar taste vanilla "
    "amber azure coral crimson emerald fuchsia golden indigo lavender maroon "
    "soccer tennis hockey baseball cricket football rugby volleyball swimming cycling"
).split()


def generate_passphrase(words: int = WORD_COUNT) -> str:
    """Pick distinct words from the dictionary with a CSPRNG."""
    chosen: list[str] = []
    while len(chosen) < words:
        word = secrets.choice(WORDS)
        if word not in chosen:
            chosen.append(word)
    return " ".join(chosen)


def is_valid_passphrase(passphrase: str | None) -> bool:
    if not passphrase:
        return False
    parts = passphrase.split()
    return len(parts) == WORD_COUNT and all(_WORD_RE.match(p) for p in parts)


def validate_passphrase(passphrase: str | None) -> str:
    """Return the passphrase unchanged, or raise InvalidPassphraseError."""
    if not is_valid_passphrase(passphrase):
        raise InvalidPassphraseError(
            f"passphrase must be exactly {WORD_COUNT} lowercase words separated by spaces"
        )
    return passphrase
