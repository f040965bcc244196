"""
Streamlit Dashboard for Expense Tracker

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Every balance change is visible right after it happens
3. Clear error messages in simple language
4. No hidden actions

Pages:
- Add Expense (manual entry, receipt photo, voice note)
- Expenses (filters, sorting, pagination, delete)
- Summary (totals, month over month, breakdowns)
- Categories and Payment Methods (management)
- Settings (integration status)
"""

from datetime import date
from decimal import Decimal

import streamlit as st

from expense_tracker.background import BackgroundLoop
from expense_tracker.config import get_settings, validate_all_settings
from expense_tracker.exceptions import ExpenseTrackerError, InvalidOperationError
from expense_tracker.models import (
    CategoryCreate,
    ExpenseCreate,
    ExpenseQuery,
    PaymentMethodCreate,
    PaymentMethodType,
    SortField,
    SortOrder,
)
from expense_tracker.orchestrator import AppComponents, create_app_components


# Page configuration
st.set_page_config(
    page_title="Expense Tracker",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .success-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


@st.cache_resource
def get_event_loop() -> BackgroundLoop:
    """One loop shared by every session so async clients and locks stay bound to it."""
    return BackgroundLoop()


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    return get_event_loop().run(coro)


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    components = create_app_components()
    run_async(components.categories.seed_system_defaults())
    return components


def main():
    """Main application entry point."""
    components = get_components()

    st.sidebar.title("💰 Expense Tracker")
    owner_id = st.sidebar.text_input(
        "Owner",
        value=get_settings().app.default_owner_id,
        help="Whose expenses to show",
    )
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "➕ Add Expense",
            "📋 Expenses",
            "📊 Summary",
            "🏷️ Categories",
            "💳 Payment Methods",
            "⚙️ Settings",
        ],
        index=0,
    )

    if not owner_id:
        st.warning("Please enter an owner id in the sidebar.")
        st.stop()

    if page == "➕ Add Expense":
        render_add_expense_page(components, owner_id)
    elif page == "📋 Expenses":
        render_expenses_page(components, owner_id)
    elif page == "📊 Summary":
        render_summary_page(components, owner_id)
    elif page == "🏷️ Categories":
        render_categories_page(components, owner_id)
    elif page == "💳 Payment Methods":
        render_payment_methods_page(components, owner_id)
    elif page == "⚙️ Settings":
        render_settings_page()


def _payment_method_picker(components: AppComponents, owner_id: str, key: str):
    payment_methods = run_async(components.payment_methods.list(owner_id))
    if not payment_methods:
        st.info("Add a payment method first on the 'Payment Methods' page.")
        return None
    selected = st.selectbox(
        "Payment method *",
        options=payment_methods,
        format_func=lambda pm: f"{pm.name} ({pm.balance:,.2f})" + (" ⭐" if pm.is_default else ""),
        key=key,
    )
    return selected.id


def _show_saved(expense) -> None:
    st.markdown(f"""
    <div class="success-box">
        <h4>✅ Expense Saved</h4>
        <p><strong>{expense.description}</strong>: {expense.amount:,.2f}</p>
        <p><strong>Date:</strong> {expense.date.strftime('%d %B %Y')}</p>
    </div>
    """, unsafe_allow_html=True)


def render_add_expense_page(components: AppComponents, owner_id: str):
    """Render the add expense page."""
    st.title("➕ Add Expense")
    manual_tab, receipt_tab, voice_tab = st.tabs(["✍️ Manual", "🧾 Receipt", "🎙️ Voice"])

    with manual_tab:
        categories = run_async(components.categories.list(owner_id))
        payment_method_id = _payment_method_picker(components, owner_id, "manual_pm")

        with st.form("manual_expense"):
            col1, col2 = st.columns(2)
            with col1:
                amount = st.number_input("Amount *", min_value=0.0, step=0.01, format="%.2f")
                description = st.text_input("Description *", max_chars=200)
            with col2:
                expense_date = st.date_input("Date", value=date.today())
                category = st.selectbox(
                    "Category *",
                    options=categories,
                    format_func=lambda c: c.name,
                )
            notes = st.text_area("Notes (optional)", max_chars=500)
            submitted = st.form_submit_button("💾 Save", type="primary")

        if submitted:
            if payment_method_id is None or category is None:
                st.error("Please choose a category and a payment method")
            elif not description:
                st.error("Please enter a description")
            else:
                try:
                    expense = run_async(components.ledger.create(
                        owner_id,
                        ExpenseCreate(
                            amount=Decimal(str(amount)).quantize(Decimal("0.01")),
                            description=description,
                            notes=notes or None,
                            date=expense_date,
                            category_id=category.id,
                            payment_method_id=payment_method_id,
                        ),
                    ))
                    _show_saved(expense)
                except ExpenseTrackerError as e:
                    st.error(f"Could not save: {e}")

    with receipt_tab:
        if components.receipt_flow is None:
            st.info("Receipt scanning needs Mindee to be configured (see Settings).")
        else:
            payment_method_id = _payment_method_picker(components, owner_id, "receipt_pm")
            settings = get_settings().app
            uploaded_file = st.file_uploader(
                "Receipt photo",
                type=settings.supported_image_formats_list,
                help="Take a clear, well-lit photo of the receipt",
            )
            if uploaded_file and payment_method_id and st.button("🔍 Scan and Save", type="primary"):
                if uploaded_file.size > settings.max_upload_size_bytes:
                    st.error(f"File is larger than {settings.max_upload_size_mb} MB")
                else:
                    with st.spinner("Reading your receipt..."):
                        try:
                            expense, validation = run_async(components.receipt_flow.process(
                                owner_id,
                                uploaded_file.read(),
                                uploaded_file.name,
                                uploaded_file.type,
                                payment_method_id=payment_method_id,
                            ))
                            _show_saved(expense)
                            for warning in validation.warnings:
                                st.warning(warning)
                        except InvalidOperationError as e:
                            st.error(str(e))
                        except ExpenseTrackerError as e:
                            st.error(f"Could not process the receipt: {e}")

    with voice_tab:
        if components.voice_flow is None:
            st.info("Voice notes need Gemini to be configured (see Settings).")
        else:
            payment_method_id = _payment_method_picker(components, owner_id, "voice_pm")
            settings = get_settings().app
            recording = st.file_uploader(
                "Voice note",
                type=settings.supported_audio_formats_list,
                help='Say something like "12.50 for lunch at the cafe"',
            )
            if recording and payment_method_id and st.button("🎙️ Process and Save", type="primary"):
                with st.spinner("Listening..."):
                    try:
                        expense, validation = run_async(components.voice_flow.process(
                            owner_id,
                            recording.read(),
                            recording.name,
                            recording.type,
                            payment_method_id=payment_method_id,
                        ))
                        _show_saved(expense)
                        if expense.voice_transcription:
                            st.caption(f'Heard: "{expense.voice_transcription}"')
                        for warning in validation.warnings:
                            st.warning(warning)
                    except ExpenseTrackerError as e:
                        st.error(f"Could not process the recording: {e}")


def render_expenses_page(components: AppComponents, owner_id: str):
    """Render the expenses list page."""
    st.title("📋 Expenses")

    categories = run_async(components.categories.list(owner_id))
    payment_methods = run_async(components.payment_methods.list(owner_id, include_inactive=True))

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        category_filter = st.selectbox(
            "Category",
            options=[None] + categories,
            format_func=lambda c: "All categories" if c is None else c.name,
        )
    with col2:
        pm_filter = st.selectbox(
            "Payment method",
            options=[None] + payment_methods,
            format_func=lambda pm: "All methods" if pm is None else pm.name,
        )
    with col3:
        sort_by = st.selectbox("Sort by", options=list(SortField), format_func=lambda f: f.value)
    with col4:
        sort_order = st.selectbox("Order", options=list(SortOrder), format_func=lambda o: o.value)

    date_range = st.date_input("Date range", value=[])
    page_number = st.number_input("Page", min_value=1, value=1, step=1)

    query = ExpenseQuery(
        start_date=date_range[0] if len(date_range) > 0 else None,
        end_date=date_range[1] if len(date_range) > 1 else None,
        category_id=category_filter.id if category_filter else None,
        payment_method_id=pm_filter.id if pm_filter else None,
        page=int(page_number),
        page_size=get_settings().app.default_page_size,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    page = run_async(components.ledger.list(owner_id, query))

    st.caption(f"{page.total} expenses, page {page.page} of {max(page.total_pages, 1)}")
    if not page.items:
        st.info("No expenses yet. Use the 'Add Expense' page to record your first one.")
        return

    category_names = {c.id: c.name for c in categories}
    method_names = {pm.id: pm.name for pm in payment_methods}
    for expense in page.items:
        col1, col2, col3, col4, col5 = st.columns([2, 4, 2, 2, 1])
        col1.write(expense.date.isoformat())
        col2.write(expense.description)
        col3.write(category_names.get(expense.category_id, "?"))
        col4.write(f"{expense.amount:,.2f} ({method_names.get(expense.payment_method_id, '?')})")
        if col5.button("🗑️", key=f"delete_{expense.id}"):
            try:
                run_async(components.ledger.delete(owner_id, expense.id))
                st.rerun()
            except ExpenseTrackerError as e:
                st.error(f"Could not delete: {e}")


def render_summary_page(components: AppComponents, owner_id: str):
    """Render the summary page."""
    st.title("📊 Summary")
    summary = run_async(components.summary.get_summary(owner_id))

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Expenses", summary.total_expenses)
    col2.metric("Total spent", f"{summary.total_amount:,.2f}")
    col3.metric("Average", f"{summary.average_expense:,.2f}")
    col4.metric(
        "This month",
        f"{summary.current_month_total:,.2f}",
        delta=f"{summary.percentage_change:+.2f}% vs last month",
        delta_color="inverse",
    )

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("By category")
        for item in summary.by_category:
            st.write(f"**{item.category_name}**: {item.total:,.2f} ({item.percentage:.2f}%, {item.count})")
    with col2:
        st.subheader("By payment method")
        for item in summary.by_payment_method:
            st.write(
                f"**{item.payment_method_name}**: {item.total:,.2f} "
                f"({item.percentage:.2f}%, {item.count})"
            )


def render_categories_page(components: AppComponents, owner_id: str):
    """Render the categories page."""
    st.title("🏷️ Categories")

    for category in run_async(components.categories.list_with_stats(owner_id)):
        col1, col2, col3 = st.columns([4, 3, 1])
        col1.write(f"{'🔒 ' if category.is_system else ''}**{category.name}**")
        col2.write(f"{category.total_expenses} expenses, {category.total_amount:,.2f}")
        if not category.is_system and col3.button("🗑️", key=f"delete_cat_{category.id}"):
            try:
                run_async(components.categories.delete(owner_id, category.id))
                st.rerun()
            except ExpenseTrackerError as e:
                st.error(str(e))

    st.markdown("---")
    with st.form("new_category"):
        st.subheader("New category")
        name = st.text_input("Name *", max_chars=50)
        description = st.text_input("Description", max_chars=200)
        color = st.color_picker("Color", value="#95A5A6")
        if st.form_submit_button("➕ Add", type="primary"):
            try:
                run_async(components.categories.create(
                    owner_id,
                    CategoryCreate(name=name, description=description or None, color=color.upper()),
                ))
                st.rerun()
            except ExpenseTrackerError as e:
                st.error(str(e))


def render_payment_methods_page(components: AppComponents, owner_id: str):
    """Render the payment methods page."""
    st.title("💳 Payment Methods")

    for pm in run_async(components.payment_methods.list_with_stats(owner_id)):
        col1, col2, col3, col4 = st.columns([4, 3, 1, 1])
        status = "" if pm.is_active else " (inactive)"
        col1.write(f"{'⭐ ' if pm.is_default else ''}**{pm.name}**{status}")
        credit = f", {pm.available_credit:,.2f} credit left" if pm.available_credit is not None else ""
        col2.write(f"Balance {pm.balance:,.2f}{credit}")
        if not pm.is_default and col3.button("⭐", key=f"default_{pm.id}"):
            run_async(components.payment_methods.set_default(owner_id, pm.id))
            st.rerun()
        if col4.button("🗑️", key=f"delete_pm_{pm.id}"):
            try:
                run_async(components.payment_methods.delete(owner_id, pm.id))
                st.rerun()
            except ExpenseTrackerError as e:
                st.error(str(e))

    st.markdown("---")
    with st.form("new_payment_method"):
        st.subheader("New payment method")
        name = st.text_input("Name *", max_chars=50)
        pm_type = st.selectbox(
            "Type",
            options=list(PaymentMethodType),
            format_func=lambda t: t.value.replace("_", " ").title(),
        )
        balance = st.number_input("Opening balance", min_value=0.0, step=0.01, format="%.2f")
        credit_limit = st.number_input(
            "Credit limit (credit cards only)", min_value=0.0, step=0.01, format="%.2f"
        )
        is_default = st.checkbox("Make default")
        if st.form_submit_button("➕ Add", type="primary"):
            try:
                run_async(components.payment_methods.create(
                    owner_id,
                    PaymentMethodCreate(
                        name=name,
                        type=pm_type,
                        balance=Decimal(str(balance)).quantize(Decimal("0.01")),
                        credit_limit=(
                            Decimal(str(credit_limit)).quantize(Decimal("0.01"))
                            if pm_type == PaymentMethodType.CREDIT_CARD and credit_limit
                            else None
                        ),
                        is_default=is_default,
                    ),
                ))
                st.rerun()
            except ExpenseTrackerError as e:
                st.error(str(e))


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")
    status = validate_all_settings()
    app_settings = get_settings().app

    st.info(f"Storage: **{app_settings.storage_backend}**, cache: **{app_settings.cache_backend}**")

    services = [
        ("Cloudinary (Receipt and voice storage)", "cloudinary"),
        ("Mindee (Receipt OCR)", "mindee"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (Voice notes)", "gemini"),
        ("Redis (Cache)", "redis"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
