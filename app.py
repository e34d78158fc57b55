"""
app.py — Vibe Gym Studio
Main Streamlit application: questionnaire, quick or AI workout generator,
countdown player, saved workouts and streak stats.
"""

import time as time_module
from typing import Optional

import pandas as pd
import streamlit as st
from loguru import logger

from ai_generator import (
    FOCUS_AREAS, INTENSITIES, MAX_AI_MINUTES, MIN_AI_MINUTES,
    AIWorkoutGenerator, AIWorkoutRequest, validate_ai_request,
)
from errors import InvalidPreferences, PersistenceFailure
from gym_logic import (
    ENERGY_LEVELS, EQUIPMENT_OPTIONS, SPACE_TYPES, TIME_OPTIONS,
    Workout, WorkoutGenerator, validate_preferences,
)
from identity import ProfileIdentity
from session_timer import Phase, WorkoutSession, format_time
from settings import StudioSettings, setup_logger
from storage import (
    InMemoryWorkoutStore, SavedWorkout, SheetsWorkoutStore, WorkoutStore,
    open_spreadsheet, record_completion,
)

GUEST = "Guest"

# ─────────────────────────────────────────────
# Page Config
# ─────────────────────────────────────────────

st.set_page_config(
    page_title="Vibe Gym Studio",
    page_icon="⚡",
    layout="centered",
    initial_sidebar_state="expanded",
)

# ─────────────────────────────────────────────
# Custom Styling
# ─────────────────────────────────────────────

st.markdown("""
<style>
    .stApp { background: #0b0b0b; color: #f5f5f5; font-family: 'Courier New', monospace; }

    .phase-exercising { color: #7bed9f; font-weight: 700; letter-spacing: 0.1em; }
    .phase-resting { color: #70a1ff; font-weight: 700; letter-spacing: 0.1em; }

    .exercise-card {
        background: rgba(255,255,255,0.05);
        border-radius: 10px;
        padding: 1rem;
        margin-bottom: 0.6rem;
        border-left: 3px solid #f5f5f5;
    }
    .exercise-card h4 { margin: 0 0 0.3rem 0; color: #f5f5f5; letter-spacing: 0.05em; }
    .exercise-card .meta { color: rgba(255,255,255,0.6); font-size: 0.85rem; }
    .tip { color: rgba(255,255,255,0.7); font-size: 0.85rem; padding-left: 0.6rem;
           border-left: 2px solid rgba(255,255,255,0.3); margin: 0.3rem 0; }

    .timer-display {
        font-size: 4rem;
        font-weight: 700;
        text-align: center;
        color: #f5f5f5;
        font-family: 'Courier New', monospace;
        padding: 0.5rem;
    }

    .studio-header { text-align: center; padding: 1rem 0 0.5rem 0; }
    .studio-header h1 { color: #f5f5f5; font-weight: 700; letter-spacing: 0.15em; }
    .studio-header p { color: rgba(255,255,255,0.6); }
</style>
""", unsafe_allow_html=True)


# ─────────────────────────────────────────────
# Settings & Services
# ─────────────────────────────────────────────

@st.cache_resource
def get_settings() -> StudioSettings:
    try:
        settings = StudioSettings.from_secrets(st.secrets)
    except FileNotFoundError:
        settings = StudioSettings()
    setup_logger(settings.log_level)
    return settings


@st.cache_resource
def get_sheets_store() -> Optional[SheetsWorkoutStore]:
    """Shared Sheets store, or None when Google Sheets isn't reachable."""
    try:
        return SheetsWorkoutStore(open_spreadsheet(get_settings()))
    except PersistenceFailure as e:
        logger.warning(f"Google Sheets unavailable, keeping data in this session: {e}")
        return None


@st.cache_resource
def get_ai_generator() -> AIWorkoutGenerator:
    settings = get_settings()
    return AIWorkoutGenerator(api_key=settings.anthropic_api_key, model=settings.ai_model)


settings = get_settings()


# ─────────────────────────────────────────────
# Session State Initialization
# ─────────────────────────────────────────────

def _forget_profile_data(_user) -> None:
    st.session_state.saved_workouts = None
    st.session_state.stats = None
    st.session_state.stats_error = None


DEFAULTS = {
    "workout": None,
    "session": None,
    "saved_record_id": None,
    "view": "home",            # "home", "generator", "preview", "player", "complete", "saved"
    "mode": "quick",           # "quick", "ai"
    "request": None,
    "saved_workouts": None,
    "stats": None,             # cached; Sheets reads are quota-limited
    "stats_error": None,
    "notices": [],
}
for key, val in DEFAULTS.items():
    if key not in st.session_state:
        st.session_state[key] = val

if "identity" not in st.session_state:
    st.session_state.identity = ProfileIdentity()
    st.session_state.identity.subscribe(_forget_profile_data)
if "local_store" not in st.session_state:
    st.session_state.local_store = InMemoryWorkoutStore()


def current_user():
    return st.session_state.identity.current_user()


def get_store() -> WorkoutStore:
    """Sheets for signed-in profiles when connected, this browser session otherwise."""
    if current_user() is not None:
        sheets = get_sheets_store()
        if sheets is not None:
            return sheets
    return st.session_state.local_store


def stats_key() -> str:
    user = current_user()
    return user.id if user else "guest"


def notify(message: str) -> None:
    st.session_state.notices.append(message)


# ─────────────────────────────────────────────
# Workout lifecycle
# ─────────────────────────────────────────────

def on_workout_complete(workout: Workout) -> None:
    """Record stats (and the saved workout's counter) once a session completes."""
    try:
        st.session_state.stats = record_completion(get_store(), stats_key(), workout)
        st.session_state.stats_error = None
        if st.session_state.saved_record_id:
            get_store().increment_times_completed(st.session_state.saved_record_id)
            st.session_state.saved_workouts = None
    except PersistenceFailure as e:
        st.session_state.stats = None
        notify(f"Workout done, but stats could not be saved: {e}")


def start_session(workout: Workout, saved_record_id: Optional[str] = None) -> None:
    st.session_state.workout = workout
    st.session_state.saved_record_id = saved_record_id
    st.session_state.session = WorkoutSession(workout, on_complete=on_workout_complete)
    st.session_state.view = "player"


def show_preview(workout: Workout) -> None:
    st.session_state.workout = workout
    st.session_state.session = None
    st.session_state.saved_record_id = None
    st.session_state.view = "preview"


# ─────────────────────────────────────────────
# Sidebar
# ─────────────────────────────────────────────

with st.sidebar:
    st.markdown("## ⚡ Vibe Gym")
    st.markdown("---")

    profile = st.selectbox(
        "Select User Profile",
        [GUEST] + settings.profiles,
        help="Sign in to a profile to save workouts. Guests can still train.",
    )
    if profile == GUEST:
        st.session_state.identity.sign_out()
    else:
        st.session_state.identity.sign_in(profile)

    st.markdown("---")
    if st.session_state.stats is None and st.session_state.stats_error is None:
        try:
            st.session_state.stats = get_store().load_stats(stats_key())
        except PersistenceFailure as e:
            st.session_state.stats_error = str(e)
    stats = st.session_state.stats
    if st.session_state.stats_error:
        st.warning(f"Could not load stats: {st.session_state.stats_error}")
    elif stats is not None:
        st.metric("🔥 Streak", f"{stats.streak} day{'s' if stats.streak != 1 else ''}")
        st.metric("Workouts", stats.total_workouts)
        st.metric("Minutes", stats.total_minutes)

    st.markdown("---")
    if st.button("🏠 Home", use_container_width=True):
        st.session_state.view = "home"
        st.rerun()
    if st.button("🔖 Saved Workouts", use_container_width=True, disabled=current_user() is None):
        st.session_state.view = "saved"
        st.rerun()

    st.markdown("---")
    st.caption("Vibe Gym Studio v1.0")
    st.caption(f"Logged in as: **{profile}**")

for message in st.session_state.notices:
    st.warning(message)
st.session_state.notices = []


# ─────────────────────────────────────────────
# Header
# ─────────────────────────────────────────────

st.markdown("""
<div class="studio-header">
    <h1>VIBE GYM</h1>
    <p>Short workouts that fit wherever you are</p>
</div>
""", unsafe_allow_html=True)


def exercise_card(i: int, ex) -> None:
    reps = f" · {ex.reps} reps" if ex.reps else ""
    rest = f" · rest {ex.rest_after_seconds}s" if ex.rest_after_seconds else ""
    st.markdown(
        f"""<div class="exercise-card">
        <h4>{i + 1}. {ex.name}</h4>
        <div class="meta">{ex.duration_seconds}s{reps}{rest} · {ex.body_focus}</div>
        <div class="tip">{ex.instructions}</div>
        </div>""",
        unsafe_allow_html=True,
    )


view = st.session_state.view

# ─────────────────────────────────────────────
# View: Home
# ─────────────────────────────────────────────

if view == "home":
    st.markdown("### What kind of workout?")
    col_quick, col_ai = st.columns(2)
    with col_quick:
        st.caption("2–5 minutes, picked from our exercise library to fit your space.")
        if st.button("⚡ Quick Workout", type="primary", use_container_width=True):
            st.session_state.mode = "quick"
            st.session_state.view = "generator"
            st.rerun()
    with col_ai:
        st.caption("A longer plan written by the AI coach around your goals.")
        if st.button("🤖 AI Coach Workout", use_container_width=True):
            st.session_state.mode = "ai"
            st.session_state.view = "generator"
            st.rerun()


# ─────────────────────────────────────────────
# View: Generator (questionnaire)
# ─────────────────────────────────────────────

elif view == "generator" and st.session_state.mode == "quick":
    st.markdown("### Build Your Quick Workout")

    col1, col2 = st.columns(2)
    with col1:
        minutes = st.radio("How much time?", TIME_OPTIONS, format_func=lambda m: f"{m} min", horizontal=True)
        space = st.radio("How much space?", SPACE_TYPES, format_func=str.title, horizontal=True)
    with col2:
        energy = st.radio("Energy level?", ENERGY_LEVELS, index=1, format_func=str.title, horizontal=True)
        equipment = st.radio("Anything nearby?", EQUIPMENT_OPTIONS, format_func=str.title, horizontal=True)

    if st.button("🎲 Generate Workout", type="primary", use_container_width=True):
        try:
            preferences = validate_preferences(minutes, space, energy, equipment)
        except InvalidPreferences as e:
            st.error(str(e))
        else:
            st.session_state.request = preferences.to_dict()
            show_preview(WorkoutGenerator().generate(preferences))
            st.rerun()

elif view == "generator":
    st.markdown("### Tell the AI Coach About Today")

    col1, col2 = st.columns(2)
    with col1:
        space_size = st.radio("Space", ["small", "big"], index=1, format_func=str.title, horizontal=True)
        intensity = st.radio("Intensity", INTENSITIES, index=1, format_func=str.title, horizontal=True)
        has_weights = st.checkbox("I have weights")
    with col2:
        duration = st.slider("Duration (min)", MIN_AI_MINUTES, MAX_AI_MINUTES, 15, step=5)
        focus = st.selectbox("Focus", FOCUS_AREAS, index=FOCUS_AREAS.index("full-body"),
                             format_func=lambda f: f.replace("-", " ").title())
    notes = st.text_area("Injuries or anything to avoid? (optional)",
                         placeholder="e.g. sore left knee, no jumping")

    if st.button("🤖 Generate with AI Coach", type="primary", use_container_width=True):
        request = AIWorkoutRequest(space_size, has_weights, intensity, duration, focus, notes)
        try:
            validate_ai_request(request)
        except InvalidPreferences as e:
            st.error(str(e))
        else:
            with st.spinner("Your coach is writing the plan..."):
                workout = get_ai_generator().generate(request)
            if workout.source == "fallback":
                notify("The AI coach is unavailable right now, so here's a quick workout instead.")
            st.session_state.request = request.to_dict()
            show_preview(workout)
            st.rerun()


# ─────────────────────────────────────────────
# View: Preview
# ─────────────────────────────────────────────

elif view == "preview" and st.session_state.workout:
    workout = st.session_state.workout
    if workout.title:
        st.markdown(f"### {workout.title}")
    st.markdown(
        f"**{len(workout.exercises)} exercises** · **{format_time(workout.total_duration_seconds)}** "
        f"· ~**{workout.estimated_calories} kcal**"
    )

    for i, ex in enumerate(workout.exercises):
        c1, c2 = st.columns([8, 1])
        with c1:
            exercise_card(i, ex)
        with c2:
            if workout.source != "ai" and st.button("🔄", key=f"swap_{i}", help="Swap this exercise"):
                swapped = WorkoutGenerator().swap(workout, i)
                if swapped:
                    st.session_state.workout = swapped
                    st.rerun()
                else:
                    st.toast("No alternative found for this slot.")

    st.markdown("---")
    col_start, col_save = st.columns(2)
    with col_start:
        if st.button("▶️ Start Workout", type="primary", use_container_width=True):
            start_session(workout)
            st.rerun()
    with col_save:
        user = current_user()
        name = st.text_input("Name", value=workout.title or "My Workout", label_visibility="collapsed",
                             disabled=user is None)
        if st.button("🔖 Save Workout", use_container_width=True, disabled=user is None,
                     help=None if user else "Pick a profile to save workouts"):
            try:
                get_store().save_workout(SavedWorkout(
                    name=name, workout=workout, user_id=user.id,
                    preferences=st.session_state.request or {},
                ))
                st.session_state.saved_workouts = None
                st.toast("Workout saved! ✅")
            except PersistenceFailure as e:
                st.warning(f"Save failed: {e}")


# ─────────────────────────────────────────────
# View: Player
# ─────────────────────────────────────────────

elif view == "player" and st.session_state.session:
    session: WorkoutSession = st.session_state.session
    session.sync()

    if session.is_complete:
        st.session_state.view = "complete"
        st.rerun()

    ex = session.current_exercise
    total = len(session.exercises)

    top_left, top_mid = st.columns([1, 4])
    with top_left:
        if st.button("✕ Exit"):
            session.exit()
            st.session_state.session = None
            st.session_state.view = "preview"
            st.rerun()
    with top_mid:
        st.progress(session.progress, text=f"Exercise {session.current_index + 1} of {total}")

    if session.phase is Phase.RESTING:
        st.markdown('<span class="phase-resting">REST</span>', unsafe_allow_html=True)
        st.markdown("## Take a break")
        st.markdown(f'<div class="timer-display">{format_time(session.time_remaining)}</div>',
                    unsafe_allow_html=True)
        upcoming = session.next_exercise
        st.caption(f"Next: {upcoming.name if upcoming else 'Finish'}")

        if session.can_skip:
            if st.button("Skip Rest", use_container_width=True):
                session.skip()
                st.rerun()
        elif st.button("✅ Finish", use_container_width=True):
            session.finish()
            st.rerun()
    else:
        st.markdown('<span class="phase-exercising">WORK</span>', unsafe_allow_html=True)
        st.markdown(f"## {ex.name}")
        st.markdown(ex.instructions)
        if ex.form_tips:
            st.markdown("#### Form Tips")
            for tip in ex.form_tips:
                st.markdown(f'<div class="tip">▸ {tip}</div>', unsafe_allow_html=True)

        st.markdown(f'<div class="timer-display">{format_time(session.time_remaining)}</div>',
                    unsafe_allow_html=True)
        if ex.reps:
            st.caption(f"Target: {ex.reps} reps")

        prev_col, play_col, next_col = st.columns(3)
        with prev_col:
            if st.button("← Previous", use_container_width=True, disabled=not session.can_go_back):
                session.previous()
                st.rerun()
        with play_col:
            label = "⏸ Pause" if session.is_running else "▶ Start"
            if st.button(label, type="primary", use_container_width=True):
                session.toggle()
                st.rerun()
        with next_col:
            if session.is_last:
                if st.button("✅ Finish", use_container_width=True):
                    session.finish()
                    st.rerun()
            elif st.button("Next →", use_container_width=True):
                session.skip()
                st.rerun()

        if st.button("↺ Repeat Exercise", use_container_width=True):
            session.repeat()
            st.rerun()

    # Keep the countdown moving while the session runs
    if session.is_running:
        time_module.sleep(1)
        st.rerun()


# ─────────────────────────────────────────────
# View: Complete
# ─────────────────────────────────────────────

elif view == "complete" and st.session_state.workout:
    st.markdown("## 🎉 Workout Complete!")
    st.balloons()

    workout = st.session_state.workout
    st.markdown(
        f"You completed **{len(workout.exercises)} exercises** "
        f"({format_time(workout.total_duration_seconds)}, ~{workout.estimated_calories} kcal). Great job!"
    )

    col_new, col_home = st.columns(2)
    with col_new:
        if st.button("🎲 Generate New Workout", type="primary", use_container_width=True):
            st.session_state.workout = None
            st.session_state.session = None
            st.session_state.view = "generator"
            st.rerun()
    with col_home:
        if st.button("Back to Home", use_container_width=True):
            st.session_state.workout = None
            st.session_state.session = None
            st.session_state.view = "home"
            st.rerun()


# ─────────────────────────────────────────────
# View: Saved Workouts
# ─────────────────────────────────────────────

elif view == "saved":
    user = current_user()
    if user is None:
        st.info("Pick a profile in the sidebar to see saved workouts.")
    else:
        st.markdown(f"### 🔖 Saved Workouts — {user.name}")

        if st.session_state.saved_workouts is None:
            try:
                st.session_state.saved_workouts = get_store().list_saved_workouts(user.id)
            except PersistenceFailure as e:
                st.warning(f"Could not load saved workouts: {e}")
        saved = st.session_state.saved_workouts or []

        if not saved:
            st.info("No workouts saved yet. Generate your first one! 🎲")
        else:
            summary = pd.DataFrame([{
                "Name": r.name,
                "Saved": r.saved_at.strftime("%Y-%m-%d %H:%M"),
                "Exercises": len(r.workout.exercises),
                "Length": format_time(r.workout.total_duration_seconds),
                "Completed": r.times_completed,
            } for r in saved])
            st.dataframe(summary, use_container_width=True, hide_index=True)

            for record in saved:
                with st.expander(f"📋 {record.name} ({record.times_completed}× completed)"):
                    for j, ex in enumerate(record.workout.exercises):
                        st.markdown(f"**{j + 1}. {ex.name}** — {ex.duration_seconds}s")
                    c1, c2 = st.columns(2)
                    with c1:
                        if st.button("▶️ Start", key=f"start_{record.id}", use_container_width=True):
                            start_session(record.workout, saved_record_id=record.id)
                            st.rerun()
                    with c2:
                        if st.button("🗑 Delete", key=f"delete_{record.id}", use_container_width=True):
                            try:
                                get_store().delete_workout(record.id)
                                st.session_state.saved_workouts = None
                                st.rerun()
                            except PersistenceFailure as e:
                                st.warning(f"Delete failed: {e}")

else:
    st.session_state.view = "home"
    st.rerun()
