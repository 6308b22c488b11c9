"""
Authored lesson scripts.

Pure data: module identifier -> ordered steps. Engine logic never depends on
any specific entry here.
"""

from guided_lesson_tutor.script_store import Channel, PacingHint, Step, StepKind

NARRATION = Channel.NARRATION
INTERACTION = Channel.INTERACTION


# Lesson 1, Module 1: Fa-SCI-nate (The Circulatory System)
FASCINATE_SCRIPT = (
    Step(
        messages=(
            "Hello, SCI-learner! 👋\n\nKumusta! Welcome to today's science journey here in Roxas City.",
            "Today, we'll explore how your body moves blood and exchanges gases.",
            "Just like boats carry goods from Culasi fish port to different barangays, "
            "your body has a transport system too!",
            "This lesson is all about **Circulation and Gas Exchange**, your body's very own delivery network. 🫀",
        ),
        channel=NARRATION,
        pacing=PacingHint.NORMAL,
    ),
    Step(
        messages=("Ready to dive in? Let's get **Fa-SCI-nated**!",),
        channel=INTERACTION,
        wait_for_user=True,
    ),
    Step(
        messages=(
            "Imagine this...\n\n"
            "You're biking along Roxas Boulevard during sunset or dancing "
            "energetically during Sinadya Festival.\n\n"
            "Have you noticed your heart beating faster?",
        ),
        channel=NARRATION,
        wait_for_user=True,
        pacing=PacingHint.SLOW,
    ),
    Step(
        messages=("That's a good observation! So here's a question:",),
        channel=NARRATION,
        pacing=PacingHint.FAST,
    ),
    Step(
        messages=("**Why do you think your heart beats faster when you move?**",),
        channel=INTERACTION,
        wait_for_user=True,
        eval_context=(
            'The student is answering: "Why does your heart beat faster when you move?"\n'
            "Correct answer concept: When you exercise or move actively, your muscles "
            "need more oxygen and energy. The heart beats faster to pump more blood "
            "carrying oxygen to the active muscles. It is the body's way of meeting "
            "increased demand for oxygen and nutrients."
        ),
        kind=StepKind.GRADED,
    ),
    Step(
        messages=("Here's another question:",),
        channel=NARRATION,
        pacing=PacingHint.FAST,
    ),
    Step(
        messages=("**What do you think carries oxygen from your lungs to your muscles?**",),
        channel=INTERACTION,
        wait_for_user=True,
        eval_context=(
            'The student is answering: "What carries oxygen from lungs to muscles?"\n'
            "Correct answer: Blood carries oxygen. Specifically, red blood cells contain "
            "hemoglobin which binds to oxygen in the lungs and transports it through "
            "blood vessels to the muscles and other body tissues.\n"
            'Accept "blood", "red blood cells" or "hemoglobin" as correct.'
        ),
        kind=StepKind.GRADED,
    ),
    Step(
        messages=(
            "Just like how delivery trucks distribute seafood from the port to the "
            "markets around Capiz, your body has a system that delivers oxygen, "
            "nutrients, and energy to every cell.\n\n"
            "That amazing system is called the **circulatory system**!",
        ),
        channel=INTERACTION,
    ),
    Step(
        messages=("Do you have any questions about what we covered? Ask away, or tell me you're ready!",),
        channel=INTERACTION,
        wait_for_user=True,
        eval_context=(
            "End-of-module open Q&A about the circulatory system (heart rate, blood, "
            "oxygen transport). Answer the student's questions briefly. When the student "
            "says they have no more questions or are ready, tell them to Tap Next."
        ),
        kind=StepKind.OPEN_QA,
    ),
    Step(
        messages=(
            "Great job, SCI-learner! You've completed this module.",
            "You're ready to move on to the next module where we'll set our learning goals.",
            "Tap **Next** when you're ready!",
        ),
        channel=NARRATION,
        module_complete=True,
        pacing=PacingHint.FAST,
    ),
)


LESSON_SCRIPTS = {
    "module_circ_fascinate": FASCINATE_SCRIPT,
}
