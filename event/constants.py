class EventStatus:
    # Only SCHEDULED is ever written; the column is a tag, not a state machine
    SCHEDULED = "scheduled"

    @classmethod
    def values(cls) -> list[str]:
        return [cls.SCHEDULED]


class RsvpStatus:
    GOING = "going"
    INTERESTED = "interested"
    NOT_GOING = "not_going"

    @classmethod
    def values(cls) -> list[str]:
        return [cls.GOING, cls.INTERESTED, cls.NOT_GOING]


MAX_LISTED_EVENTS = 50
