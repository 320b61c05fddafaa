from tarstrap.outputs.base import EntryOutput


class VisitorOutput(EntryOutput):
    """Hands each entry to a caller supplied visitor callable.

    The visitor may raise exceptions.StopWalk to end the walk early.
    """

    def __init__(self, visitor):
        self.visitor = visitor

    def process_entry(self, ent):
        self.visitor(ent)

    def finalize(self):
        pass
