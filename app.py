# app.py
import logging
from typing import Dict

import streamlit as st

from blockchain import Block, Ledger
from voting import PARTIES, RegistrationError, VoterRegistry, VotingError, VotingService

# -----------------------
# settings (edit if needed)
DIFFICULTY = 2
MINING_TIMEOUT = None  # seconds; None mines until done

# -----------------------
# logging
logger = logging.getLogger(__name__)
for _name in (__name__, "blockchain", "voting"):
    _log = logging.getLogger(_name)
    # streamlit re-runs this script on every interaction
    if not _log.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        _log.addHandler(handler)
        _log.setLevel(logging.INFO)


# -----------------------
# composition root: one ledger and one voter roll per process
@st.cache_resource
def build_service() -> VotingService:
    ledger = Ledger(difficulty=DIFFICULTY, mining_timeout=MINING_TIMEOUT)
    registry = VoterRegistry()
    logger.info("ledger started (difficulty=%d)", DIFFICULTY)
    return VotingService(ledger, registry, PARTIES)


def block_summary(block: Block) -> Dict:
    data = block.to_dict()
    if block.index == 0:
        data["payload"] = "genesis"
    return data


def show_results(service: VotingService):
    results = service.results()
    if any(results.values()):
        st.table([{"Party": k, "Votes": v} for k, v in results.items()])
        st.bar_chart({k: v for k, v in results.items()})
    else:
        st.info("No votes cast yet.")


# -----------------------
# UI config
st.set_page_config(page_title="SmartVote+ — Blockchain E-Voting", layout="wide")
st.title("🗳️ SmartVote+ — Blockchain E-Voting System")
st.markdown("**Demo — not for real elections. Votes live in memory and are lost on restart.**")

service = build_service()
ledger = service.ledger

page = st.sidebar.selectbox("Choose Page", ["Voter", "Results", "Explorer"])

# -----------------------
# Voter view
if page == "Voter":
    st.header("Voter Portal")
    col1, col2 = st.columns(2)

    with col1:
        st.subheader("Register New Voter")
        name_reg = st.text_input("Full Name", key="reg_name")
        vid_reg = st.text_input("Voter ID (unique)", key="reg_vid")
        age_reg = st.number_input("Age", min_value=0, max_value=130, value=18, step=1, key="reg_age")
        email_reg = st.text_input("Email", key="reg_email")
        addr_reg = st.text_input("Address", key="reg_addr")
        pwd_reg = st.text_input("Password", type="password", key="reg_pwd")
        if st.button("Register"):
            try:
                voter = service.registry.register(
                    name_reg, vid_reg, int(age_reg), email_reg, pwd_reg, address=addr_reg
                )
            except RegistrationError as e:
                st.error(str(e))
            else:
                st.session_state["logged_in_vid"] = voter.voter_id
                st.success("Registered. You are now logged in.")

    with col2:
        st.subheader("Login & Vote")
        vid_login = st.text_input("Voter ID", key="login_vid")
        pwd_login = st.text_input("Password", type="password", key="login_pwd")
        if st.button("Login"):
            voter = service.registry.authenticate(vid_login, pwd_login)
            if voter is None:
                st.error("Invalid voter ID or password")
            else:
                st.session_state["logged_in_vid"] = voter.voter_id
                st.success(f"Welcome back, {voter.name}!")

        logged_vid = st.session_state.get("logged_in_vid")
        if logged_vid:
            voter = service.registry.find(logged_vid)
            st.info(f"Logged in as: {logged_vid} — {voter.name if voter else '?'}")
            if st.button("Logout"):
                del st.session_state["logged_in_vid"]
                st.rerun()
            if service.has_voted(logged_vid):
                st.warning("You have already voted.")
            else:
                selected = st.radio("Select Party", service.parties, key="vote_select")
                if st.button("Cast Vote"):
                    try:
                        with st.spinner("Mining block..."):
                            new_block = service.cast_vote(logged_vid, selected)
                    except VotingError as e:
                        st.error(str(e))
                    else:
                        st.success("Vote recorded and block mined ✅")
                        st.json({"index": new_block.index, "hash": new_block.hash, "nonce": new_block.nonce})

# -----------------------
# Results view
elif page == "Results":
    st.header("Voting Results (live)")
    show_results(service)
    st.caption(f"{len(ledger) - 1} votes recorded across {len(ledger)} blocks")

# -----------------------
# Explorer view
elif page == "Explorer":
    st.header("Blockchain Explorer")
    stats = ledger.stats()
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Blocks", stats.blocks)
    c2.metric("Votes", stats.votes)
    c3.metric("Difficulty", stats.difficulty)
    c4.metric("Health", "Secure" if stats.valid else "Tampered")
    if not stats.valid:
        st.error("Chain integrity check failed: tampering detected.")

    query = st.text_input("Search by block index, hash or voter ID")
    if st.button("Search"):
        found = ledger.find_block(query)
        if found is None:
            st.error("No block matches that query")
        else:
            st.json(block_summary(found))

    st.subheader("Chain Verification")
    if st.button("Verify Chain"):
        if ledger.is_valid():
            st.success(f"All {len(ledger)} blocks have been verified and are secure.")
        else:
            st.error("Chain integrity check failed: tampering detected.")

    st.subheader("All Blocks")
    st.json({"chain": [block_summary(b) for b in ledger.chain]})
