"""Left/right role resolution for a pair of detected hands."""

from typing import Optional, Sequence

from kamehameha.detectors.hand_types import Hand, LabeledHandPair, WRIST


def identify_hands(hands: Optional[Sequence[Hand]]) -> Optional[LabeledHandPair]:
    """
    Label exactly two hands as left/right by wrist x-coordinate.

    3D wrists (world space, not mirrored) are compared when both hands carry
    them; otherwise the 2D wrists are compared directly, since the camera feed
    is mirrored upstream. Smaller x is the left hand in both cases. On a tie the
    second hand is left, so identical input always yields the same labeling.

    Returns None unless there are exactly two hands that both expose a wrist.
    """
    if not hands or len(hands) != 2:
        return None

    hand1, hand2 = hands[0], hands[1]
    wrist1 = hand1.get(WRIST)
    wrist2 = hand2.get(WRIST)
    if wrist1 is None or wrist2 is None:
        return None

    x1, x2 = wrist1.x, wrist2.x
    wrist3d_1 = hand1.get_3d(WRIST)
    wrist3d_2 = hand2.get_3d(WRIST)
    if wrist3d_1 is not None and wrist3d_2 is not None:
        x1, x2 = wrist3d_1.x, wrist3d_2.x

    if x1 < x2:
        return LabeledHandPair(left=hand1, right=hand2)
    return LabeledHandPair(left=hand2, right=hand1)
